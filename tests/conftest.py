from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from carrier_onboarding.api.deps import get_workflow_registry
from carrier_onboarding.api.main import app
from carrier_onboarding.api.workflows import WorkflowRegistry
from carrier_onboarding.domain.models import OnboardingWorkflowState
from carrier_onboarding.domain.services.documents import DocumentCollectionTracker
from carrier_onboarding.domain.services.identity import IdentityVerificationCoordinator
from carrier_onboarding.domain.services.payout import PayoutMethodLinker
from carrier_onboarding.domain.services.registry_lookup import CarrierRegistryLookup
from carrier_onboarding.domain.services.workflow import OnboardingWorkflow, ProfilePersistence
from carrier_onboarding.infrastructure.db.base import Base
from carrier_onboarding.infrastructure.repositories import (
    CarrierProfileRepository,
    OnboardingStateRepository,
)
from tests.fakes import (
    NOW,
    FakeAccountLinks,
    FakeAttestation,
    FakePersistence,
    FakeRegistry,
    FakeStorage,
    FixedCodeDelivery,
)

TIMEOUT_SECONDS = 0.5


@dataclass
class Collaborators:
    registry: FakeRegistry = field(default_factory=FakeRegistry)
    delivery: FixedCodeDelivery = field(default_factory=FixedCodeDelivery)
    attestation: FakeAttestation = field(default_factory=FakeAttestation)
    storage: FakeStorage = field(default_factory=FakeStorage)
    account_links: FakeAccountLinks = field(default_factory=FakeAccountLinks)
    persistence: FakePersistence = field(default_factory=FakePersistence)

    def tracker(self) -> DocumentCollectionTracker:
        return DocumentCollectionTracker(
            self.storage, timeout_seconds=TIMEOUT_SECONDS, clock=lambda: NOW
        )

    def identity(self, max_attempts: int = 5) -> IdentityVerificationCoordinator:
        return IdentityVerificationCoordinator(
            self.delivery,
            self.attestation,
            max_attempts=max_attempts,
            timeout_seconds=TIMEOUT_SECONDS,
        )

    def payout(self) -> PayoutMethodLinker:
        return PayoutMethodLinker(
            self.account_links, self.tracker(), timeout_seconds=TIMEOUT_SECONDS
        )

    def workflow_factory(
        self, persistence: ProfilePersistence | None = None
    ) -> Callable[[OnboardingWorkflowState], OnboardingWorkflow]:
        lookup = CarrierRegistryLookup(self.registry, timeout_seconds=TIMEOUT_SECONDS)
        identity = self.identity()
        tracker = self.tracker()
        payout = self.payout()

        def factory(state: OnboardingWorkflowState) -> OnboardingWorkflow:
            return OnboardingWorkflow(
                state,
                lookup=lookup,
                identity=identity,
                documents=tracker,
                payout=payout,
                persistence=persistence or self.persistence,
                timeout_seconds=TIMEOUT_SECONDS,
                clock=lambda: NOW,
            )

        return factory


@pytest.fixture()
def collaborators() -> Collaborators:
    return Collaborators()


@pytest.fixture()
def make_workflow(collaborators: Collaborators) -> Callable[..., OnboardingWorkflow]:
    factory = collaborators.workflow_factory()

    def _make(carrier_id: str = "carrier-1", state: OnboardingWorkflowState | None = None):
        return factory(state or OnboardingWorkflowState(carrier_id=carrier_id))

    return _make


@pytest.fixture()
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
async def workflow_registry(
    session_factory: async_sessionmaker[AsyncSession], collaborators: Collaborators
) -> WorkflowRegistry:
    return WorkflowRegistry(
        OnboardingStateRepository(session_factory),
        collaborators.workflow_factory(CarrierProfileRepository(session_factory)),
    )


@pytest.fixture()
async def async_client(workflow_registry: WorkflowRegistry) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to fakes and an in-memory database."""
    app.dependency_overrides[get_workflow_registry] = lambda: workflow_registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_workflow_registry, None)
