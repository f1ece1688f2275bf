"""Carrier registry lookup boundary."""

from __future__ import annotations

import asyncio
import re
from typing import Protocol

import structlog

from carrier_onboarding.domain.errors import (
    LookupUnavailableError,
    NotFoundError,
    OnboardingError,
    ValidationError,
)
from carrier_onboarding.domain.models import CarrierRegistryRecord

logger = structlog.get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")


class RegistryLookupService(Protocol):
    """Protocol for the authority registry (allows test doubles)."""

    async def lookup(self, identifying_number: str) -> CarrierRegistryRecord:
        """Return the record or raise NotFoundError / LookupUnavailableError."""
        ...


def normalize_identifying_number(raw: str) -> str:
    """Strip everything but digits, e.g. ``"MC-777 777"`` -> ``"777777"``."""
    digits = _NON_DIGITS.sub("", raw or "")
    if not digits:
        raise ValidationError("Enter an MC number containing digits")
    return digits


class CarrierRegistryLookup:
    """Resolves a registry record with a bounded wait."""

    def __init__(self, service: RegistryLookupService, *, timeout_seconds: float) -> None:
        self.service = service
        self.timeout_seconds = timeout_seconds

    async def lookup(self, identifying_number: str) -> CarrierRegistryRecord:
        number = normalize_identifying_number(identifying_number)
        await logger.ainfo("registry_lookup_started", identifying_number=number)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                record = await self.service.lookup(number)
        except TimeoutError as exc:
            await logger.awarning(
                "registry_lookup_timeout",
                identifying_number=number,
                timeout_seconds=self.timeout_seconds,
            )
            raise LookupUnavailableError(
                "The carrier registry did not respond in time. Please try again."
            ) from exc
        except NotFoundError:
            await logger.ainfo("registry_lookup_not_found", identifying_number=number)
            raise
        except OnboardingError:
            raise
        except Exception as exc:
            await logger.awarning(
                "registry_lookup_failed", identifying_number=number, error=str(exc)
            )
            raise LookupUnavailableError(f"Carrier registry lookup failed: {exc}") from exc

        await logger.ainfo(
            "registry_lookup_succeeded",
            identifying_number=number,
            legal_name=record.legal_name,
        )
        return record
