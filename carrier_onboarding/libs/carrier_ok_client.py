"""
CarrierOK API client for authority registry lookups.

Maps the CarrierOK profile payload onto ``CarrierRegistryRecord``.
"""

from __future__ import annotations

from datetime import date
from typing import Any

import httpx
import structlog

from carrier_onboarding.core.config import get_settings
from carrier_onboarding.domain.errors import LookupUnavailableError, NotFoundError
from carrier_onboarding.domain.models import (
    AuthorityStatus,
    CarrierRegistryRecord,
    PostalAddress,
    SafetyRating,
)

logger = structlog.get_logger(__name__)


class CarrierOKClient:
    """Async CarrierOK API client."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.carrier_ok_api_key
        self.base_url = (base_url or settings.carrier_ok_base_url).rstrip("/")
        self.timeout = (
            timeout_seconds if timeout_seconds is not None else settings.carrier_ok_timeout_seconds
        )
        self._transport = transport

        if not self.api_key:
            logger.warning("carrier_ok_api_key_missing", msg="CARRIER_OK_API_KEY not configured")

    async def lookup(self, identifying_number: str) -> CarrierRegistryRecord:
        """Fetch the carrier profile registered under an MC number."""
        if not self.api_key:
            raise LookupUnavailableError("CarrierOK API key not configured")

        headers = {
            "X-Api-Key": self.api_key,
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self.base_url}/profiles/mc/{identifying_number}",
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise LookupUnavailableError(f"CarrierOK request failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"Carrier with MC-{identifying_number} not found")

        if response.status_code != 200:
            raise LookupUnavailableError(f"CarrierOK error {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise LookupUnavailableError("CarrierOK response was not valid JSON") from exc

        try:
            return parse_profile(data, identifying_number)
        except (KeyError, TypeError, ValueError) as exc:
            raise LookupUnavailableError(f"CarrierOK response was incomplete: {exc}") from exc


def _safety_rating(value: str | None) -> SafetyRating:
    # CONDITIONAL and missing ratings are not disqualifying; treat them as NONE.
    if value == SafetyRating.SATISFACTORY.value:
        return SafetyRating.SATISFACTORY
    if value == SafetyRating.UNSATISFACTORY.value:
        return SafetyRating.UNSATISFACTORY
    return SafetyRating.NONE


def parse_profile(data: dict[str, Any], identifying_number: str) -> CarrierRegistryRecord:
    address = data.get("address") or {}
    fleet = data.get("reported_truck_count", data.get("safer_trucks"))
    granted = data.get("original_grant_date") or data["authority_granted_date"]

    return CarrierRegistryRecord(
        identifying_number=str(data.get("mc_number") or identifying_number),
        legal_name=data["legal_name"],
        trade_name=data.get("dba_name") or None,
        authority_status=(
            AuthorityStatus.ACTIVE
            if data.get("authority_status") == AuthorityStatus.ACTIVE.value
            else AuthorityStatus.INACTIVE
        ),
        authority_granted_on=date.fromisoformat(granted),
        fleet_size=int(fleet or 0),
        safety_rating=_safety_rating(data.get("safety_rating")),
        contact_email=data.get("contact_email") or "",
        contact_phone=data.get("contact_phone") or "",
        recent_contact_change=bool(data.get("recent_contact_changes", False)),
        address=PostalAddress(
            street=address.get("street", ""),
            city=address.get("city", ""),
            state=address.get("state", ""),
            zip_code=address.get("zip", ""),
        ),
        insurance_agent_email=data.get("insurance_agent_email") or "",
    )
