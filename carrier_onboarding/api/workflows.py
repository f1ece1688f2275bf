"""In-process registry of live onboarding workflows, hydrated from the database."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carrier_onboarding.core.config import Settings, get_settings
from carrier_onboarding.domain.models import OnboardingWorkflowState
from carrier_onboarding.domain.services.attestation import EmailAttestationService
from carrier_onboarding.domain.services.code_delivery import EmailCodeDeliveryService
from carrier_onboarding.domain.services.documents import DocumentCollectionTracker
from carrier_onboarding.domain.services.identity import IdentityVerificationCoordinator
from carrier_onboarding.domain.services.payout import PayoutMethodLinker
from carrier_onboarding.domain.services.registry_lookup import CarrierRegistryLookup
from carrier_onboarding.domain.services.workflow import OnboardingWorkflow, ProfilePersistence
from carrier_onboarding.infrastructure.db.session import get_session_factory
from carrier_onboarding.infrastructure.repositories import (
    CarrierProfileRepository,
    OnboardingStateRepository,
)
from carrier_onboarding.libs.carrier_ok_client import CarrierOKClient
from carrier_onboarding.libs.resend_client import ResendClient
from carrier_onboarding.libs.storage_client import StorageClient
from carrier_onboarding.libs.stripe_connect import StripeConnectLinker

logger = structlog.get_logger(__name__)

WorkflowFactory = Callable[[OnboardingWorkflowState], OnboardingWorkflow]


class WorkflowRegistry:
    """One live workflow per carrier; saved progress is reloaded on first access."""

    def __init__(
        self,
        states: OnboardingStateRepository,
        factory: WorkflowFactory,
        *,
        idle_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.states = states
        self.factory = factory
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._workflows: dict[str, OnboardingWorkflow] = {}
        self._last_seen: dict[str, float] = {}

    @property
    def live_carrier_ids(self) -> frozenset[str]:
        return frozenset(self._workflows)

    async def get(self, carrier_id: str) -> OnboardingWorkflow:
        now = self._clock()
        await self._evict_idle(now)
        self._last_seen[carrier_id] = now

        workflow = self._workflows.get(carrier_id)
        if workflow is not None:
            return workflow

        state = await self.states.load(carrier_id)
        if state is None:
            state = OnboardingWorkflowState(carrier_id=carrier_id)
            await logger.ainfo("onboarding_started", carrier_id=carrier_id)
        else:
            await logger.ainfo("onboarding_resumed", carrier_id=carrier_id, stage=state.stage.value)

        # Another request may have registered the carrier while the load was awaited.
        workflow = self._workflows.setdefault(carrier_id, self.factory(state))
        return workflow

    async def save(self, workflow: OnboardingWorkflow) -> None:
        await self.states.save(workflow.state)

    async def discard(self, carrier_id: str) -> None:
        """Forget a finished workflow so the next visit starts fresh."""
        self._workflows.pop(carrier_id, None)
        self._last_seen.pop(carrier_id, None)
        await self.states.delete(carrier_id)

    async def _evict_idle(self, now: float) -> None:
        """Drop workflows nobody touched for ``idle_seconds``; their state is already saved."""
        idle = [
            carrier_id
            for carrier_id, seen in self._last_seen.items()
            if now - seen > self.idle_seconds
        ]
        for carrier_id in idle:
            del self._last_seen[carrier_id]
            self._workflows.pop(carrier_id, None)
        if idle:
            await logger.ainfo("onboarding_workflows_evicted", count=len(idle))


def build_workflow_factory(
    persistence: ProfilePersistence, settings: Settings | None = None
) -> WorkflowFactory:
    """Wire the production collaborators once; every workflow shares them."""
    settings = settings or get_settings()
    timeout = settings.external_call_timeout_seconds

    resend = ResendClient()
    lookup = CarrierRegistryLookup(CarrierOKClient(), timeout_seconds=timeout)
    identity = IdentityVerificationCoordinator(
        EmailCodeDeliveryService(resend),
        EmailAttestationService(resend),
        max_attempts=settings.verification_code_max_attempts,
        timeout_seconds=timeout,
    )
    documents = DocumentCollectionTracker(StorageClient(), timeout_seconds=timeout)
    payout = PayoutMethodLinker(StripeConnectLinker(), documents, timeout_seconds=timeout)

    def factory(state: OnboardingWorkflowState) -> OnboardingWorkflow:
        return OnboardingWorkflow(
            state,
            lookup=lookup,
            identity=identity,
            documents=documents,
            payout=payout,
            persistence=persistence,
            timeout_seconds=timeout,
        )

    return factory


def build_workflow_registry(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> WorkflowRegistry:
    settings = get_settings()
    session_factory = session_factory or get_session_factory()
    return WorkflowRegistry(
        OnboardingStateRepository(session_factory),
        build_workflow_factory(CarrierProfileRepository(session_factory)),
        idle_seconds=settings.workflow_idle_seconds,
    )
