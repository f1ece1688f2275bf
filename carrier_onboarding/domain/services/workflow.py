"""
Carrier onboarding workflow.

Stages run email_verification -> lookup -> identity_verification ->
documents -> bank_connection -> review -> completed, with rejected reachable
from lookup when the eligibility gates fail. Every stage change goes through
the TRANSITIONS table; an action only replaces the state after its external
call succeeded, so a failure always leaves the pre-call state in place.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol

import structlog

from carrier_onboarding.domain.errors import (
    InvalidTransitionError,
    OnboardingError,
    PersistError,
    StaleRequestError,
    ValidationError,
)
from carrier_onboarding.domain.models import (
    STAGE_ORDER,
    CarrierRegistryRecord,
    ConsolidatedProfile,
    DocumentKind,
    DocumentSlot,
    IdentityMethod,
    OnboardingStage,
    OnboardingWorkflowState,
    PayoutMethod,
    PayoutState,
)
from carrier_onboarding.domain.services.documents import DocumentCollectionTracker, DocumentUpload
from carrier_onboarding.domain.services.eligibility import evaluate
from carrier_onboarding.domain.services.email_policy import validate_business_email
from carrier_onboarding.domain.services.identity import IdentityVerificationCoordinator
from carrier_onboarding.domain.services.payout import LinkResult, PayoutMethodLinker
from carrier_onboarding.domain.services.registry_lookup import CarrierRegistryLookup
from carrier_onboarding.domain.services.risk import assess_risk

logger = structlog.get_logger(__name__)

ELEVATED_RISK_SCORE = 50


class WorkflowEvent(str, enum.Enum):
    EMAIL_ACCEPTED = "email_accepted"
    GATE_PASSED = "gate_passed"
    GATE_FAILED = "gate_failed"
    IDENTITY_ESTABLISHED = "identity_established"
    DOCUMENTS_COMPLETED = "documents_completed"
    PAYOUT_CONNECTED = "payout_connected"
    FINALIZED = "finalized"
    RETRY_LOOKUP = "retry_lookup"
    RESET = "reset"


Stage = OnboardingStage
Event = WorkflowEvent

TRANSITIONS: dict[tuple[OnboardingStage, WorkflowEvent], OnboardingStage] = {
    (Stage.EMAIL_VERIFICATION, Event.EMAIL_ACCEPTED): Stage.LOOKUP,
    (Stage.LOOKUP, Event.GATE_PASSED): Stage.IDENTITY_VERIFICATION,
    (Stage.LOOKUP, Event.GATE_FAILED): Stage.REJECTED,
    (Stage.REJECTED, Event.RETRY_LOOKUP): Stage.LOOKUP,
    (Stage.IDENTITY_VERIFICATION, Event.IDENTITY_ESTABLISHED): Stage.DOCUMENTS,
    (Stage.DOCUMENTS, Event.DOCUMENTS_COMPLETED): Stage.BANK_CONNECTION,
    (Stage.BANK_CONNECTION, Event.PAYOUT_CONNECTED): Stage.REVIEW,
    (Stage.REVIEW, Event.FINALIZED): Stage.COMPLETED,
}


def can_submit(state: OnboardingWorkflowState) -> bool:
    """Every earlier stage has its completion flag set."""
    return (
        state.business_email is not None
        and state.record is not None
        and state.gate_result is not None
        and state.gate_result.passed
        and state.identity.identity_established
        and state.documents.is_complete
        and state.payout.connected
    )


_PREREQUISITES: dict[WorkflowEvent, Callable[[OnboardingWorkflowState], bool]] = {
    Event.EMAIL_ACCEPTED: lambda s: s.business_email is not None,
    Event.GATE_PASSED: lambda s: (
        s.record is not None and s.gate_result is not None and s.gate_result.passed
    ),
    Event.GATE_FAILED: lambda s: s.gate_result is not None and not s.gate_result.passed,
    Event.IDENTITY_ESTABLISHED: lambda s: s.identity.identity_established,
    Event.DOCUMENTS_COMPLETED: lambda s: s.documents.is_complete,
    Event.PAYOUT_CONNECTED: lambda s: s.payout.connected,
    Event.FINALIZED: can_submit,
    Event.RETRY_LOOKUP: lambda s: True,
    Event.RESET: lambda s: True,
}


def apply_transition(
    state: OnboardingWorkflowState, event: WorkflowEvent
) -> OnboardingWorkflowState:
    """Return ``state`` moved along ``event`` or raise InvalidTransitionError."""
    if event == Event.RESET:
        return OnboardingWorkflowState(carrier_id=state.carrier_id)

    target = TRANSITIONS.get((state.stage, event))
    if target is None:
        raise InvalidTransitionError(
            f"'{event.value}' is not allowed while in '{state.stage.value}'"
        )
    if not _PREREQUISITES[event](state):
        raise InvalidTransitionError(
            f"Cannot leave '{state.stage.value}' before it is complete"
        )
    return replace(state, stage=target)


def progress_percentage(stage: OnboardingStage) -> float:
    position_stage = Stage.LOOKUP if stage == Stage.REJECTED else stage
    index = STAGE_ORDER.index(position_stage)
    return round(index / (len(STAGE_ORDER) - 1) * 100, 1)


class ProfilePersistence(Protocol):
    async def finalize(self, carrier_id: str, profile: ConsolidatedProfile) -> None:
        """Write the finalized carrier profile or raise PersistError."""
        ...


@dataclass(slots=True, frozen=True)
class ReviewSummary:
    legal_name: str
    identifying_number: str
    identity_method: IdentityMethod
    identity_status: str  # confirmed | pending_attestation | unverified
    documents: tuple[DocumentSlot, ...]
    payout_method: PayoutMethod
    instant_settlement: bool
    risk_score: int
    risk_indicators: tuple[str, ...]
    flags: tuple[str, ...]
    can_submit: bool


@dataclass(slots=True, frozen=True)
class CompletionReceipt:
    carrier_id: str
    completed_at: datetime
    profile: ConsolidatedProfile
    flags: tuple[str, ...]


class OnboardingWorkflow:
    """Owns one carrier's workflow state and the actions that change it."""

    def __init__(
        self,
        state: OnboardingWorkflowState,
        *,
        lookup: CarrierRegistryLookup,
        identity: IdentityVerificationCoordinator,
        documents: DocumentCollectionTracker,
        payout: PayoutMethodLinker,
        persistence: ProfilePersistence,
        timeout_seconds: float,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._state = state
        self._lookup = lookup
        self._identity = identity
        self._documents = documents
        self._payout = payout
        self._persistence = persistence
        self.timeout_seconds = timeout_seconds
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tickets: dict[str, int] = {}
        self._generation = 0

    # -- derived reads -----------------------------------------------------

    @property
    def state(self) -> OnboardingWorkflowState:
        return self._state

    @property
    def stage(self) -> OnboardingStage:
        return self._state.stage

    @property
    def carrier_id(self) -> str:
        return self._state.carrier_id

    @property
    def progress_percentage(self) -> float:
        return progress_percentage(self._state.stage)

    @property
    def can_submit(self) -> bool:
        return can_submit(self._state)

    def review_flags(self) -> tuple[str, ...]:
        state = self._state
        flags: list[str] = []
        if state.identity.attestation_pending:
            flags.append("identity_attestation_unconfirmed")
        if state.risk is not None and state.risk.score >= ELEVATED_RISK_SCORE:
            flags.append("elevated_risk")
        if state.payout.connected and not state.payout.instant_settlement:
            flags.append("standard_settlement_only")
        return tuple(flags)

    def review_summary(self) -> ReviewSummary:
        state = self._state
        if state.record is None:
            raise InvalidTransitionError("Nothing to review before the carrier lookup")

        if state.identity.code_confirmed:
            identity_status = "confirmed"
        elif state.identity.attestation_pending:
            identity_status = "pending_attestation"
        else:
            identity_status = "unverified"

        return ReviewSummary(
            legal_name=state.record.legal_name,
            identifying_number=state.record.identifying_number,
            identity_method=state.identity.method,
            identity_status=identity_status,
            documents=state.documents.slots,
            payout_method=state.payout.method,
            instant_settlement=state.payout.instant_settlement,
            risk_score=state.risk.score if state.risk else 0,
            risk_indicators=state.risk.indicators if state.risk else (),
            flags=self.review_flags(),
            can_submit=self.can_submit,
        )

    # -- bookkeeping -------------------------------------------------------

    def _require_stage(self, *stages: OnboardingStage) -> None:
        if self._state.stage not in stages:
            allowed = ", ".join(stage.value for stage in stages)
            raise InvalidTransitionError(
                f"This action is only available during: {allowed} "
                f"(current stage: {self._state.stage.value})"
            )

    def _issue_ticket(self, action: str) -> tuple[int, int]:
        ticket = self._tickets.get(action, 0) + 1
        self._tickets[action] = ticket
        return ticket, self._generation

    def _invalidate(self, *actions: str) -> None:
        """Make any in-flight call of these actions stale."""
        for action in actions:
            self._tickets[action] = self._tickets.get(action, 0) + 1

    async def _ensure_current(self, action: str, ticket: tuple[int, int]) -> None:
        number, generation = ticket
        if self._tickets.get(action) != number or self._generation != generation:
            await logger.ainfo(
                "stale_result_discarded",
                carrier_id=self.carrier_id,
                action=action,
                stage=self._state.stage.value,
            )
            raise StaleRequestError("This request was superseded by a newer one")

    def _commit(self, state: OnboardingWorkflowState, *events: WorkflowEvent) -> None:
        previous = self._state.stage
        for event in events:
            state = apply_transition(state, event)
        self._state = state
        if state.stage != previous:
            logger.info(
                "stage_transition",
                carrier_id=state.carrier_id,
                from_stage=previous.value,
                to_stage=state.stage.value,
                progress=self.progress_percentage,
            )

    # -- email_verification ------------------------------------------------

    def submit_business_email(self, email: str) -> OnboardingWorkflowState:
        self._require_stage(Stage.EMAIL_VERIFICATION)
        business_email = validate_business_email(email)
        self._commit(
            self._state.evolve(
                business_email=business_email,
                started_at=self._state.started_at or self._clock(),
            ),
            Event.EMAIL_ACCEPTED,
        )
        return self._state

    # -- lookup ------------------------------------------------------------

    async def lookup(self, identifying_number: str) -> OnboardingWorkflowState:
        self._require_stage(Stage.LOOKUP)
        ticket = self._issue_ticket("lookup")

        record = await self._lookup.lookup(identifying_number)
        await self._ensure_current("lookup", ticket)
        self._require_stage(Stage.LOOKUP)

        gate_result = evaluate(record, self._clock())
        risk = assess_risk(record, gate_result)
        await logger.ainfo(
            "gate_evaluated",
            carrier_id=self.carrier_id,
            identifying_number=record.identifying_number,
            passed=gate_result.passed,
            failure_reasons=list(gate_result.failure_reasons),
            risk_score=risk.score,
        )

        self._commit(
            self._state.evolve(
                identifying_number=record.identifying_number,
                record=record,
                gate_result=gate_result,
                risk=risk,
            ),
            Event.GATE_PASSED if gate_result.passed else Event.GATE_FAILED,
        )
        return self._state

    def retry_lookup(self) -> OnboardingWorkflowState:
        """Leave ``rejected`` to try a different MC number."""
        self._require_stage(Stage.REJECTED)
        self._generation += 1
        self._commit(
            self._state.evolve(
                identifying_number=None, record=None, gate_result=None, risk=None
            ),
            Event.RETRY_LOOKUP,
        )
        return self._state

    # -- identity_verification ---------------------------------------------

    def choose_identity_method(self, method: IdentityMethod) -> OnboardingWorkflowState:
        self._require_stage(Stage.IDENTITY_VERIFICATION)
        identity = self._identity.choose_method(self._state.identity, method)
        if identity.method != self._state.identity.method:
            self._invalidate("send_code", "confirm_code", "request_attestation")
        self._commit(self._state.evolve(identity=identity))
        return self._state

    async def send_code(self) -> OnboardingWorkflowState:
        self._require_stage(Stage.IDENTITY_VERIFICATION)
        contact_email = self._require_record().contact_email
        ticket = self._issue_ticket("send_code")

        identity = await self._identity.send_code(self._state.identity, contact_email)
        await self._ensure_current("send_code", ticket)
        self._require_stage(Stage.IDENTITY_VERIFICATION)

        self._invalidate("request_attestation")
        self._commit(self._state.evolve(identity=identity))
        return self._state

    async def confirm_code(self, code: str) -> bool:
        self._require_stage(Stage.IDENTITY_VERIFICATION)
        contact_email = self._require_record().contact_email
        ticket = self._issue_ticket("confirm_code")
        send_ticket = self._tickets.get("send_code")

        identity, matched = await self._identity.confirm_code(
            self._state.identity, contact_email, code
        )
        await self._ensure_current("confirm_code", ticket)
        if self._tickets.get("send_code") != send_ticket:
            # A fresh code went out while this one was being checked.
            raise StaleRequestError("A new code was requested; enter the latest code")
        self._require_stage(Stage.IDENTITY_VERIFICATION)

        if matched:
            self._commit(self._state.evolve(identity=identity), Event.IDENTITY_ESTABLISHED)
        else:
            self._commit(self._state.evolve(identity=identity))
        return matched

    async def request_attestation(self) -> OnboardingWorkflowState:
        self._require_stage(Stage.IDENTITY_VERIFICATION)
        record = self._require_record()
        ticket = self._issue_ticket("request_attestation")

        identity = await self._identity.request_attestation(
            self._state.identity, record.insurance_agent_email, record.legal_name
        )
        await self._ensure_current("request_attestation", ticket)
        self._require_stage(Stage.IDENTITY_VERIFICATION)

        # Optimistic: the agent's answer arrives out of band.
        self._commit(self._state.evolve(identity=identity), Event.IDENTITY_ESTABLISHED)
        return self._state

    # -- documents ---------------------------------------------------------

    _DOCUMENT_STAGES = (Stage.DOCUMENTS, Stage.BANK_CONNECTION, Stage.REVIEW)

    async def upload_document(
        self, kind: DocumentKind, upload: DocumentUpload
    ) -> OnboardingWorkflowState:
        self._require_stage(*self._DOCUMENT_STAGES)
        ticket = self._issue_ticket(f"upload:{kind.value}")

        documents = await self._documents.upload(
            self._state.documents, kind, upload, owner_id=self.carrier_id
        )
        await self._ensure_current(f"upload:{kind.value}", ticket)
        self._require_stage(*self._DOCUMENT_STAGES)

        # Only this slot; a concurrent upload may have filled another one meanwhile.
        merged = self._state.documents.with_slot(documents.get(kind))
        self._commit(self._state.evolve(documents=merged))
        return self._state

    def clear_document(self, kind: DocumentKind) -> OnboardingWorkflowState:
        self._require_stage(*self._DOCUMENT_STAGES)
        self._invalidate(f"upload:{kind.value}")
        documents = self._documents.clear(self._state.documents, kind)
        self._commit(self._state.evolve(documents=documents))
        return self._state

    def continue_to_payout(self) -> OnboardingWorkflowState:
        self._require_stage(Stage.DOCUMENTS)
        self._commit(self._state, Event.DOCUMENTS_COMPLETED)
        return self._state

    # -- bank_connection ---------------------------------------------------

    _PAYOUT_STAGES = (Stage.BANK_CONNECTION, Stage.REVIEW)

    def choose_payout_method(self, method: PayoutMethod) -> OnboardingWorkflowState:
        self._require_stage(*self._PAYOUT_STAGES)
        if self._state.payout.method != method:
            self._generation += 1
        payout = self._payout.choose_method(self._state.payout, method)
        self._commit(self._state.evolve(payout=payout))
        return self._state

    async def link_account(self) -> LinkResult:
        self._require_stage(*self._PAYOUT_STAGES)
        ticket = self._issue_ticket("link_account")

        payout, result = await self._payout.link_account(self._state.payout, self.carrier_id)
        await self._ensure_current("link_account", ticket)
        self._require_stage(*self._PAYOUT_STAGES)

        self._commit_payout(payout)
        return result

    async def upload_payout_document(
        self, kind: DocumentKind, upload: DocumentUpload
    ) -> OnboardingWorkflowState:
        self._require_stage(*self._PAYOUT_STAGES)
        action = f"payout_upload:{kind.value}"
        ticket = self._issue_ticket(action)

        payout = await self._payout.upload_document(
            self._state.payout, kind, upload, owner_id=self.carrier_id
        )
        await self._ensure_current(action, ticket)
        self._require_stage(*self._PAYOUT_STAGES)

        merged = self._payout.with_document(self._state.payout, payout.documents.get(kind))
        self._commit_payout(merged)
        return self._state

    def clear_payout_document(self, kind: DocumentKind) -> OnboardingWorkflowState:
        self._require_stage(*self._PAYOUT_STAGES)
        self._invalidate(f"payout_upload:{kind.value}")
        payout = self._payout.clear_document(self._state.payout, kind)
        self._commit(self._state.evolve(payout=payout))
        return self._state

    def _commit_payout(self, payout: PayoutState) -> None:
        state = self._state.evolve(payout=payout)
        if state.stage == Stage.BANK_CONNECTION and payout.connected:
            self._commit(state, Event.PAYOUT_CONNECTED)
        else:
            self._commit(state)

    # -- review ------------------------------------------------------------

    def build_profile(self) -> ConsolidatedProfile:
        state = self._state
        record = self._require_record()
        if state.business_email is None:
            raise ValidationError("Business email has not been verified")
        return ConsolidatedProfile(
            record=record,
            business_email=state.business_email,
            identity_method=state.identity.method,
            identity_confirmed=state.identity.code_confirmed,
            payout_method=state.payout.method,
            instant_settlement=state.payout.instant_settlement,
            linked_account_id=state.payout.linked_account_id,
            documents=state.documents.slots + state.payout.documents.slots,
            risk_score=state.risk.score if state.risk else 0,
            verified_at=self._clock(),
        )

    async def submit(self) -> CompletionReceipt:
        self._require_stage(Stage.REVIEW)
        if not self.can_submit:
            raise InvalidTransitionError("Complete every step before submitting")

        ticket = self._issue_ticket("submit")
        profile = self.build_profile()
        try:
            async with asyncio.timeout(self.timeout_seconds):
                await self._persistence.finalize(self.carrier_id, profile)
        except TimeoutError as exc:
            await logger.awarning("onboarding_finalize_timeout", carrier_id=self.carrier_id)
            raise PersistError("Saving your profile timed out. Please try again.") from exc
        except OnboardingError:
            raise
        except Exception as exc:
            await logger.aerror(
                "onboarding_finalize_failed", carrier_id=self.carrier_id, error=str(exc)
            )
            raise PersistError("Failed to complete onboarding. Please try again.") from exc

        try:
            await self._ensure_current("submit", ticket)
        except StaleRequestError:
            # The profile is already stored; only the local completion is dropped.
            await logger.awarning(
                "onboarding_finalized_after_reset",
                carrier_id=self.carrier_id,
                identifying_number=profile.record.identifying_number,
            )
            raise
        flags = self.review_flags()
        self._commit(self._state, Event.FINALIZED)
        await logger.ainfo(
            "onboarding_completed",
            carrier_id=self.carrier_id,
            identifying_number=profile.record.identifying_number,
            flags=list(flags),
        )
        return CompletionReceipt(
            carrier_id=self.carrier_id,
            completed_at=profile.verified_at,
            profile=profile,
            flags=flags,
        )

    # -- reset -------------------------------------------------------------

    def reset(self) -> OnboardingWorkflowState:
        """Back to email verification with everything cleared; in-flight results are dropped."""
        self._generation += 1
        self._tickets.clear()
        self._commit(self._state, Event.RESET)
        return self._state

    def _require_record(self) -> CarrierRegistryRecord:
        if self._state.record is None:
            raise InvalidTransitionError("Look up the carrier first")
        return self._state.record
