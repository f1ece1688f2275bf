"""
Payout method linking.

- linked account: external account connection, instant settlement
- manual documents: W-9 plus voided check, standard multi-day settlement
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Protocol

import structlog

from carrier_onboarding.domain.errors import LinkError, OnboardingError, ValidationError
from carrier_onboarding.domain.models import DocumentKind, DocumentSlot, PayoutMethod, PayoutState
from carrier_onboarding.domain.services.documents import DocumentCollectionTracker, DocumentUpload

logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class LinkResult:
    account_id: str
    connected: bool
    onboarding_url: str | None = None


class AccountLinkService(Protocol):
    async def initiate_link(self, carrier_id: str, account_id: str | None = None) -> LinkResult:
        """Start or resume the account connection, or raise LinkError."""
        ...


class PayoutMethodLinker:
    def __init__(
        self,
        account_links: AccountLinkService,
        tracker: DocumentCollectionTracker,
        *,
        timeout_seconds: float,
    ) -> None:
        self.account_links = account_links
        self.tracker = tracker
        self.timeout_seconds = timeout_seconds

    def choose_method(self, payout: PayoutState, method: PayoutMethod) -> PayoutState:
        """Pick a method; progress on the other method is discarded."""
        if payout.method == method:
            return payout
        logger.info("payout_method_chosen", previous=payout.method.value, method=method.value)
        return PayoutState(method=method)

    async def link_account(
        self, payout: PayoutState, carrier_id: str
    ) -> tuple[PayoutState, LinkResult]:
        _require_method(payout, PayoutMethod.LINKED_ACCOUNT)
        if payout.connected:
            return payout, LinkResult(account_id=payout.linked_account_id or "", connected=True)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                result = await self.account_links.initiate_link(
                    carrier_id, payout.linked_account_id
                )
        except TimeoutError as exc:
            raise LinkError("Bank connection timed out. Please try again.") from exc
        except OnboardingError:
            raise
        except Exception as exc:
            await logger.awarning("payout_link_failed", carrier_id=carrier_id, error=str(exc))
            raise LinkError("Failed to connect your bank account. Please try again.") from exc

        if not result.connected:
            await logger.ainfo(
                "payout_link_pending", carrier_id=carrier_id, account_id=result.account_id
            )
            return replace(payout, linked_account_id=result.account_id), result

        await logger.ainfo(
            "payout_link_connected", carrier_id=carrier_id, account_id=result.account_id
        )
        return (
            replace(
                payout,
                connected=True,
                instant_settlement=True,
                linked_account_id=result.account_id,
            ),
            result,
        )

    async def upload_document(
        self,
        payout: PayoutState,
        kind: DocumentKind,
        upload: DocumentUpload,
        *,
        owner_id: str,
    ) -> PayoutState:
        _require_method(payout, PayoutMethod.MANUAL_DOCUMENTS)
        documents = await self.tracker.upload(payout.documents, kind, upload, owner_id=owner_id)
        return self.with_document(payout, documents.get(kind))

    def with_document(self, payout: PayoutState, slot: DocumentSlot) -> PayoutState:
        """Place one uploaded slot onto ``payout``, leaving the other slots as they are."""
        documents = payout.documents.with_slot(slot)
        return replace(
            payout,
            documents=documents,
            connected=documents.is_complete,
            instant_settlement=False,
        )

    def clear_document(self, payout: PayoutState, kind: DocumentKind) -> PayoutState:
        _require_method(payout, PayoutMethod.MANUAL_DOCUMENTS)
        documents = self.tracker.clear(payout.documents, kind)
        return replace(payout, documents=documents, connected=False, instant_settlement=False)


def _require_method(payout: PayoutState, method: PayoutMethod) -> None:
    if payout.method != method:
        raise ValidationError(
            f"Choose the {method.value.replace('_', ' ')} payout method first"
        )
