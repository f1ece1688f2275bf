"""
Stripe Connect account linking for carrier payouts.

The Stripe SDK is blocking, so every call runs in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any

import stripe
import structlog

from carrier_onboarding.core.config import get_settings
from carrier_onboarding.domain.errors import LinkError
from carrier_onboarding.domain.services.payout import LinkResult

logger = structlog.get_logger(__name__)


class StripeConnectLinker:
    """Creates (or reuses) an Express account and reports whether payouts are live."""

    def __init__(self, api_key: str | None = None) -> None:
        self.settings = get_settings()
        self.api_key = (api_key or self.settings.stripe_secret_key).strip()

        if not self.api_key:
            logger.warning("stripe_secret_key_missing", msg="STRIPE_SECRET_KEY not configured")

    async def initiate_link(self, carrier_id: str, account_id: str | None = None) -> LinkResult:
        if not self.api_key:
            raise LinkError("Bank connection is not configured. Please use manual upload.")

        try:
            if account_id is None:
                account = await asyncio.to_thread(self._create_account, carrier_id)
                account_id = account["id"]
                await logger.ainfo(
                    "stripe_account_created", carrier_id=carrier_id, account_id=account_id
                )
            else:
                account = await asyncio.to_thread(
                    stripe.Account.retrieve, account_id, api_key=self.api_key
                )

            if account.get("payouts_enabled"):
                return LinkResult(account_id=account_id, connected=True)

            link = await asyncio.to_thread(self._create_account_link, account_id)
        except stripe.StripeError as exc:
            await logger.aerror(
                "stripe_link_failed", carrier_id=carrier_id, error=str(exc)
            )
            raise LinkError("Failed to connect your bank account. Please try again.") from exc

        return LinkResult(account_id=account_id, connected=False, onboarding_url=link["url"])

    def _create_account(self, carrier_id: str) -> Any:
        return stripe.Account.create(
            api_key=self.api_key,
            type="express",
            country=self.settings.stripe_connect_country,
            capabilities={"transfers": {"requested": True}},
            metadata={"carrier_id": carrier_id},
        )

    def _create_account_link(self, account_id: str) -> Any:
        return stripe.AccountLink.create(
            api_key=self.api_key,
            account=account_id,
            refresh_url=self.settings.stripe_connect_refresh_url,
            return_url=self.settings.stripe_connect_return_url,
            type="account_onboarding",
        )
