"""In-memory stand-ins for the external services the workflow talks to."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, date, datetime
from typing import Any

from carrier_onboarding.domain.errors import DeliveryError, NotFoundError
from carrier_onboarding.domain.models import (
    AuthorityStatus,
    CarrierRegistryRecord,
    ConsolidatedProfile,
    PostalAddress,
    SafetyRating,
)
from carrier_onboarding.domain.services.documents import DocumentUpload
from carrier_onboarding.domain.services.payout import LinkResult

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)

COMPLIANT_NUMBER = "777777"
SMALL_FLEET_NUMBER = "111111"
RECENT_CHANGE_NUMBER = "999999"
FIXED_CODE = "123456"


def make_record(identifying_number: str = COMPLIANT_NUMBER, **overrides: Any) -> CarrierRegistryRecord:
    record = CarrierRegistryRecord(
        identifying_number=identifying_number,
        legal_name="Lone Star Haulers LLC",
        trade_name="Lone Star Freight",
        authority_status=AuthorityStatus.ACTIVE,
        authority_granted_on=date(2015, 5, 20),
        fleet_size=45,
        safety_rating=SafetyRating.SATISFACTORY,
        contact_email="dispatch@lonestarhaulers.com",
        contact_phone="+1-512-555-0147",
        recent_contact_change=False,
        address=PostalAddress(
            street="1200 Industrial Blvd", city="Austin", state="TX", zip_code="78741"
        ),
        insurance_agent_email="agent@progressive-commercial.com",
    )
    return replace(record, **overrides)


def canned_records() -> dict[str, CarrierRegistryRecord]:
    return {
        COMPLIANT_NUMBER: make_record(),
        SMALL_FLEET_NUMBER: make_record(
            SMALL_FLEET_NUMBER,
            legal_name="Tiny Trucking Co",
            trade_name=None,
            authority_granted_on=date(2018, 1, 15),
            fleet_size=1,
            contact_email="owner@tinytrucking.com",
        ),
        RECENT_CHANGE_NUMBER: make_record(
            RECENT_CHANGE_NUMBER,
            legal_name="Shifty Logistics Inc",
            recent_contact_change=True,
            contact_email="ops@shiftylogistics.com",
        ),
    }


def pdf(name: str = "document.pdf") -> DocumentUpload:
    return DocumentUpload(filename=name, content=b"%PDF-1.7 test", content_type="application/pdf")


class FakeRegistry:
    def __init__(self, records: dict[str, CarrierRegistryRecord] | None = None) -> None:
        self.records = records if records is not None else canned_records()
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.holds: dict[str, asyncio.Event] = {}

    def hold(self, number: str) -> asyncio.Event:
        """Block lookups of ``number`` until the returned event is set."""
        event = asyncio.Event()
        self.holds[number] = event
        return event

    async def lookup(self, identifying_number: str) -> CarrierRegistryRecord:
        self.calls.append(identifying_number)
        held = self.holds.get(identifying_number)
        if held is not None:
            await held.wait()
        if self.error is not None:
            raise self.error
        try:
            return self.records[identifying_number]
        except KeyError:
            raise NotFoundError(f"No carrier found for MC {identifying_number}") from None


class FixedCodeDelivery:
    """Always issues ``123456``."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.checked: list[tuple[str, str]] = []
        self.error: Exception | None = None
        self.hold: asyncio.Event | None = None

    async def send_code(self, email: str) -> None:
        if self.hold is not None:
            await self.hold.wait()
        if self.error is not None:
            raise self.error
        self.sent.append(email)

    async def confirm_code(self, email: str, code: str) -> bool:
        self.checked.append((email, code))
        return email in self.sent and code == FIXED_CODE


class FakeAttestation:
    def __init__(self) -> None:
        self.requests: list[tuple[str, str]] = []
        self.error: Exception | None = None

    async def send_attestation_request(self, agent_email: str, carrier_name: str) -> None:
        if self.error is not None:
            raise self.error
        self.requests.append((agent_email, carrier_name))


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.error: Exception | None = None
        self.holds: dict[str, asyncio.Event] = {}

    def hold(self, kind: str) -> asyncio.Event:
        """Block uploads of ``kind`` until the returned event is set."""
        event = asyncio.Event()
        self.holds[kind] = event
        return event

    async def store(
        self,
        *,
        owner_id: str,
        kind: str,
        filename: str,
        content: bytes,
        content_type: str,
    ) -> str:
        held = self.holds.get(kind)
        if held is not None:
            await held.wait()
        if self.error is not None:
            raise self.error
        location = f"carrier-documents/{owner_id}/{kind}/{filename}"
        self.objects[location] = content
        return location


class FakeAccountLinks:
    """Connects immediately unless ``payouts_enabled`` is switched off."""

    def __init__(self) -> None:
        self.payouts_enabled = True
        self.calls: list[tuple[str, str | None]] = []
        self.error: Exception | None = None

    async def initiate_link(self, carrier_id: str, account_id: str | None = None) -> LinkResult:
        self.calls.append((carrier_id, account_id))
        if self.error is not None:
            raise self.error
        account_id = account_id or f"acct_{carrier_id}"
        if self.payouts_enabled:
            return LinkResult(account_id=account_id, connected=True)
        return LinkResult(
            account_id=account_id,
            connected=False,
            onboarding_url=f"https://connect.stripe.com/setup/{account_id}",
        )


class FakePersistence:
    def __init__(self) -> None:
        self.profiles: dict[str, ConsolidatedProfile] = {}
        self.error: Exception | None = None
        self.hold: asyncio.Event | None = None

    async def finalize(self, carrier_id: str, profile: ConsolidatedProfile) -> None:
        if self.hold is not None:
            await self.hold.wait()
        if self.error is not None:
            raise self.error
        self.profiles[carrier_id] = profile


def delivery_down() -> DeliveryError:
    return DeliveryError("Email provider unavailable")
