from __future__ import annotations

import pytest

from carrier_onboarding.domain.errors import LinkError, ValidationError
from carrier_onboarding.domain.models import DocumentKind, PayoutMethod, PayoutState
from carrier_onboarding.domain.services.payout import PayoutMethodLinker
from tests.conftest import Collaborators
from tests.fakes import pdf

CARRIER = "carrier-1"


@pytest.fixture()
def linker(collaborators: Collaborators) -> PayoutMethodLinker:
    return collaborators.payout()


class TestLinkedAccount:
    async def test_connected_account_enables_instant_settlement(
        self, linker: PayoutMethodLinker
    ) -> None:
        payout = linker.choose_method(PayoutState(), PayoutMethod.LINKED_ACCOUNT)

        payout, result = await linker.link_account(payout, CARRIER)

        assert result.connected is True
        assert payout.connected is True
        assert payout.instant_settlement is True
        assert payout.linked_account_id == "acct_carrier-1"

    async def test_pending_account_returns_onboarding_url(
        self, linker: PayoutMethodLinker, collaborators: Collaborators
    ) -> None:
        collaborators.account_links.payouts_enabled = False
        payout = linker.choose_method(PayoutState(), PayoutMethod.LINKED_ACCOUNT)

        payout, result = await linker.link_account(payout, CARRIER)

        assert result.connected is False
        assert result.onboarding_url == "https://connect.stripe.com/setup/acct_carrier-1"
        assert payout.connected is False
        assert payout.linked_account_id == "acct_carrier-1"

        collaborators.account_links.payouts_enabled = True
        payout, result = await linker.link_account(payout, CARRIER)

        assert payout.connected is True
        assert collaborators.account_links.calls[-1] == (CARRIER, "acct_carrier-1")

    async def test_link_failure_keeps_previous_state(
        self, linker: PayoutMethodLinker, collaborators: Collaborators
    ) -> None:
        collaborators.account_links.error = RuntimeError("stripe down")
        payout = linker.choose_method(PayoutState(), PayoutMethod.LINKED_ACCOUNT)

        with pytest.raises(LinkError):
            await linker.link_account(payout, CARRIER)

        assert payout.connected is False

    async def test_link_requires_linked_account_method(self, linker: PayoutMethodLinker) -> None:
        with pytest.raises(ValidationError):
            await linker.link_account(PayoutState(), CARRIER)


class TestManualDocuments:
    async def test_both_documents_connect_without_instant_settlement(
        self, linker: PayoutMethodLinker
    ) -> None:
        payout = linker.choose_method(PayoutState(), PayoutMethod.MANUAL_DOCUMENTS)

        payout = await linker.upload_document(
            payout, DocumentKind.TAX_FORM, pdf("w9.pdf"), owner_id=CARRIER
        )
        assert payout.connected is False

        payout = await linker.upload_document(
            payout, DocumentKind.VOIDED_CHECK, pdf("check.pdf"), owner_id=CARRIER
        )

        assert payout.connected is True
        assert payout.instant_settlement is False

    async def test_clearing_a_document_disconnects(self, linker: PayoutMethodLinker) -> None:
        payout = linker.choose_method(PayoutState(), PayoutMethod.MANUAL_DOCUMENTS)
        for kind in (DocumentKind.TAX_FORM, DocumentKind.VOIDED_CHECK):
            payout = await linker.upload_document(payout, kind, pdf(), owner_id=CARRIER)

        payout = linker.clear_document(payout, DocumentKind.VOIDED_CHECK)

        assert payout.connected is False


async def test_switching_method_discards_progress(linker: PayoutMethodLinker) -> None:
    payout = linker.choose_method(PayoutState(), PayoutMethod.LINKED_ACCOUNT)
    payout, _ = await linker.link_account(payout, CARRIER)

    payout = linker.choose_method(payout, PayoutMethod.MANUAL_DOCUMENTS)

    assert payout == PayoutState(method=PayoutMethod.MANUAL_DOCUMENTS)


def test_connected_without_method_is_invalid() -> None:
    with pytest.raises(ValidationError):
        PayoutState(connected=True)
