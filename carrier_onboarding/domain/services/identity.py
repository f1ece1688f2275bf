"""
Identity verification for a carrier that passed the eligibility gates.

Two mutually exclusive paths:
- direct code: a 6-digit code mailed to the registry contact email
- third-party attestation: the insurance agent on file is asked to vouch
  for the carrier; sending the request is enough to move on
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import replace

import structlog

from carrier_onboarding.domain.errors import (
    DeliveryError,
    OnboardingError,
    ValidationError,
    VerificationLockedError,
)
from carrier_onboarding.domain.models import IdentityMethod, IdentityVerificationState
from carrier_onboarding.domain.services.attestation import AttestationService
from carrier_onboarding.domain.services.code_delivery import CODE_LENGTH, CodeDeliveryService

logger = structlog.get_logger(__name__)

_CODE_PATTERN = re.compile(rf"[0-9]{{{CODE_LENGTH}}}")


def validate_code_format(code: str) -> str:
    code = (code or "").strip()
    if not _CODE_PATTERN.fullmatch(code):
        raise ValidationError(f"Verification code must be exactly {CODE_LENGTH} digits")
    return code


def switch_method(
    identity: IdentityVerificationState, method: IdentityMethod
) -> IdentityVerificationState:
    """Select a path; the abandoned path's progress is dropped."""
    if identity.method == method:
        return identity
    return IdentityVerificationState(method=method)


class IdentityVerificationCoordinator:
    """Drives whichever identity path the carrier picked."""

    def __init__(
        self,
        code_delivery: CodeDeliveryService,
        attestation: AttestationService,
        *,
        max_attempts: int,
        timeout_seconds: float,
    ) -> None:
        self.code_delivery = code_delivery
        self.attestation = attestation
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds

    def choose_method(
        self, identity: IdentityVerificationState, method: IdentityMethod
    ) -> IdentityVerificationState:
        if identity.identity_established:
            raise ValidationError("Identity is already verified")
        return switch_method(identity, method)

    async def send_code(
        self, identity: IdentityVerificationState, contact_email: str
    ) -> IdentityVerificationState:
        if identity.method == IdentityMethod.DIRECT_CODE and identity.code_confirmed:
            raise ValidationError("Email is already verified")
        if not contact_email:
            raise ValidationError("No contact email is on file for this carrier")

        await self._deliver(self.code_delivery.send_code(contact_email), "verification code")

        identity = switch_method(identity, IdentityMethod.DIRECT_CODE)
        await logger.ainfo("identity_code_requested", contact_email=contact_email)
        return replace(identity, code_requested=True, failed_attempts=0)

    async def confirm_code(
        self, identity: IdentityVerificationState, contact_email: str, code: str
    ) -> tuple[IdentityVerificationState, bool]:
        """Return the updated state and whether the code matched."""
        code = validate_code_format(code)

        if identity.method != IdentityMethod.DIRECT_CODE or not identity.code_requested:
            raise ValidationError("Request a verification code before confirming")
        if identity.code_confirmed:
            return identity, True
        if identity.failed_attempts >= self.max_attempts:
            raise VerificationLockedError(
                "Too many incorrect codes. Request a new code to try again."
            )

        matched = await self._deliver(
            self.code_delivery.confirm_code(contact_email, code), "verification check"
        )

        if not matched:
            attempts = identity.failed_attempts + 1
            await logger.ainfo(
                "identity_code_rejected",
                contact_email=contact_email,
                failed_attempts=attempts,
            )
            return replace(identity, failed_attempts=attempts), False

        await logger.ainfo("identity_code_confirmed", contact_email=contact_email)
        return replace(identity, code_confirmed=True), True

    async def request_attestation(
        self,
        identity: IdentityVerificationState,
        agent_email: str,
        carrier_name: str,
    ) -> IdentityVerificationState:
        if identity.identity_established:
            raise ValidationError("Identity is already verified")
        if not agent_email:
            raise ValidationError("No insurance agent email is on file for this carrier")

        await self._deliver(
            self.attestation.send_attestation_request(agent_email, carrier_name),
            "attestation request",
        )

        identity = switch_method(identity, IdentityMethod.THIRD_PARTY_ATTESTATION)
        await logger.ainfo(
            "identity_attestation_requested",
            agent_email=agent_email,
            carrier_name=carrier_name,
        )
        return replace(identity, attestation_requested=True)

    async def _deliver(self, call, what: str):
        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await call
        except TimeoutError as exc:
            await logger.awarning("identity_delivery_timeout", what=what)
            raise DeliveryError(f"The {what} timed out. Please try again.") from exc
        except OnboardingError:
            raise
        except Exception as exc:
            await logger.awarning("identity_delivery_failed", what=what, error=str(exc))
            raise DeliveryError(f"The {what} failed. Please try again.") from exc
