"""
Insurance agent attestation requests.

The agent confirms the carrier's identity out of band (usually by sending a
certificate of insurance). Nothing here waits for that answer.
"""

from __future__ import annotations

import hashlib
from html import escape
from typing import Protocol

import structlog

from carrier_onboarding.domain.errors import DeliveryError
from carrier_onboarding.libs.resend_client import OutgoingEmail, ResendClient, ResendClientError

logger = structlog.get_logger(__name__)


class AttestationService(Protocol):
    async def send_attestation_request(self, agent_email: str, carrier_name: str) -> None:
        """Ask the agent to vouch for the carrier or raise DeliveryError."""
        ...


class EmailAttestationService:
    """Emails the insurance agent on file through Resend."""

    def __init__(self, client: ResendClient | None = None) -> None:
        self.client = client or ResendClient()

    async def send_attestation_request(self, agent_email: str, carrier_name: str) -> None:
        if not agent_email:
            raise DeliveryError("No insurance agent email is on file for this carrier")

        text_body, html_body = self._build_email_content(carrier_name)
        try:
            message_id = await self.client.send(
                OutgoingEmail(
                    to=(agent_email,),
                    subject=f"Identity confirmation requested for {carrier_name}",
                    html=html_body,
                    text=text_body,
                    category="carrier_attestation",
                    idempotency_key=_request_key(agent_email, carrier_name),
                )
            )
        except ResendClientError as exc:
            await logger.aerror(
                "attestation_request_failed",
                agent_email=agent_email,
                carrier_name=carrier_name,
                error=str(exc),
            )
            raise DeliveryError("Failed to send request. Please try again.") from exc

        await logger.ainfo(
            "attestation_request_sent",
            agent_email=agent_email,
            carrier_name=carrier_name,
            resend_id=message_id,
        )

    def _build_email_content(self, carrier_name: str) -> tuple[str, str]:
        text_lines = [
            "Hello,",
            "",
            f"{carrier_name} is joining our freight marketplace and listed you as",
            "their insurance agent. Please confirm their identity by replying with a",
            "current certificate of insurance naming the carrier.",
            "",
            "Thank you.",
        ]
        html_body = (
            "<p>Hello,</p>"
            f"<p><strong>{escape(carrier_name)}</strong> is joining our freight marketplace "
            "and listed you as their insurance agent.</p>"
            "<p>Please confirm their identity by replying with a current certificate of "
            "insurance naming the carrier.</p>"
            "<p>Thank you.</p>"
        )
        return "\n".join(text_lines), html_body


def _request_key(agent_email: str, carrier_name: str) -> str:
    # Repeat requests for the same carrier within a day reach the agent once.
    digest = hashlib.sha256(f"{agent_email.lower()}|{carrier_name}".encode()).hexdigest()
    return f"carrier-attestation-{digest[:32]}"
