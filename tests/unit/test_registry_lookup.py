from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from carrier_onboarding.domain.errors import (
    LookupUnavailableError,
    NotFoundError,
    ValidationError,
)
from carrier_onboarding.domain.models import SafetyRating
from carrier_onboarding.domain.services.registry_lookup import (
    CarrierRegistryLookup,
    normalize_identifying_number,
)
from carrier_onboarding.libs.carrier_ok_client import CarrierOKClient, parse_profile
from tests.fakes import FakeRegistry

PROFILE = {
    "mc_number": "777777",
    "legal_name": "Lone Star Haulers LLC",
    "dba_name": "Lone Star Freight",
    "authority_status": "ACTIVE",
    "original_grant_date": "2015-05-20",
    "reported_truck_count": 45,
    "safety_rating": "SATISFACTORY",
    "contact_email": "dispatch@lonestarhaulers.com",
    "contact_phone": "+1-512-555-0147",
    "recent_contact_changes": False,
    "address": {"street": "1200 Industrial Blvd", "city": "Austin", "state": "TX", "zip": "78741"},
    "insurance_agent_email": "agent@progressive-commercial.com",
}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("777777", "777777"), ("MC-777777", "777777"), (" mc 777 777 ", "777777")],
)
def test_identifying_number_is_normalized(raw: str, expected: str) -> None:
    assert normalize_identifying_number(raw) == expected


def test_number_without_digits_is_rejected() -> None:
    with pytest.raises(ValidationError):
        normalize_identifying_number("MC-")


class TestCarrierRegistryLookup:
    async def test_lookup_passes_normalized_number(self) -> None:
        registry = FakeRegistry()
        lookup = CarrierRegistryLookup(registry, timeout_seconds=1)

        record = await lookup.lookup("MC-777777")

        assert registry.calls == ["777777"]
        assert record.legal_name == "Lone Star Haulers LLC"

    async def test_unknown_number_raises_not_found(self) -> None:
        lookup = CarrierRegistryLookup(FakeRegistry(), timeout_seconds=1)

        with pytest.raises(NotFoundError) as exc_info:
            await lookup.lookup("123")

        assert exc_info.value.retryable is False

    async def test_slow_registry_is_unavailable(self) -> None:
        registry = FakeRegistry()
        registry.hold("777777")
        lookup = CarrierRegistryLookup(registry, timeout_seconds=0.01)

        with pytest.raises(LookupUnavailableError) as exc_info:
            await lookup.lookup("777777")

        assert exc_info.value.retryable is True

    async def test_unexpected_error_is_unavailable(self) -> None:
        registry = FakeRegistry()
        registry.error = RuntimeError("connection reset")
        lookup = CarrierRegistryLookup(registry, timeout_seconds=1)

        with pytest.raises(LookupUnavailableError):
            await lookup.lookup("777777")


class TestCarrierOKClient:
    def client(self, handler) -> CarrierOKClient:
        return CarrierOKClient(
            api_key="ck_test",
            base_url="https://carrierok.test/v1",
            transport=httpx.MockTransport(handler),
        )

    async def test_profile_is_fetched_and_mapped(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=json.dumps(PROFILE))

        record = await self.client(handler).lookup("777777")

        assert str(seen[0].url) == "https://carrierok.test/v1/profiles/mc/777777"
        assert seen[0].headers["X-Api-Key"] == "ck_test"
        assert record.trade_name == "Lone Star Freight"
        assert record.fleet_size == 45
        assert record.authority_granted_on == date(2015, 5, 20)
        assert record.address.zip_code == "78741"

    async def test_404_is_not_found(self) -> None:
        client = self.client(lambda request: httpx.Response(404))

        with pytest.raises(NotFoundError):
            await client.lookup("123456")

    async def test_server_error_is_unavailable(self) -> None:
        client = self.client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(LookupUnavailableError):
            await client.lookup("777777")

    async def test_incomplete_profile_is_unavailable(self) -> None:
        client = self.client(lambda request: httpx.Response(200, json={"mc_number": "777777"}))

        with pytest.raises(LookupUnavailableError):
            await client.lookup("777777")

    async def test_missing_api_key_is_unavailable(self) -> None:
        client = self.client(lambda request: httpx.Response(200, json=PROFILE))
        client.api_key = ""

        with pytest.raises(LookupUnavailableError):
            await client.lookup("777777")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("SATISFACTORY", SafetyRating.SATISFACTORY),
        ("UNSATISFACTORY", SafetyRating.UNSATISFACTORY),
        ("CONDITIONAL", SafetyRating.NONE),
        (None, SafetyRating.NONE),
    ],
)
def test_safety_rating_mapping(raw: str | None, expected: SafetyRating) -> None:
    assert parse_profile({**PROFILE, "safety_rating": raw}, "777777").safety_rating == expected


def test_fallback_field_names() -> None:
    data = {
        key: value
        for key, value in PROFILE.items()
        if key not in ("reported_truck_count", "original_grant_date")
    }
    data.update(
        {"safer_trucks": 7, "authority_granted_date": "2019-02-01", "recent_contact_changes": True}
    )

    record = parse_profile(data, "777777")

    assert record.fleet_size == 7
    assert record.authority_granted_on == date(2019, 2, 1)
    assert record.recent_contact_change is True
