from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carrier_onboarding.domain.errors import PersistError
from carrier_onboarding.domain.models import OnboardingWorkflowState
from carrier_onboarding.infrastructure.db.models import OnboardingStateModel

logger = structlog.get_logger(__name__)


class OnboardingStateRepository:
    """Keeps the in-progress workflow record so a carrier can resume later."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def load(self, carrier_id: str) -> OnboardingWorkflowState | None:
        async with self.session_factory() as session:
            row = await session.get(OnboardingStateModel, carrier_id)
            if row is None:
                return None
            return OnboardingWorkflowState.from_record(row.payload)

    async def save(self, state: OnboardingWorkflowState) -> None:
        payload = state.to_record()
        try:
            async with self.session_factory() as session:
                row = await session.get(OnboardingStateModel, state.carrier_id)
                if row is None:
                    session.add(
                        OnboardingStateModel(
                            carrier_id=state.carrier_id,
                            stage=state.stage.value,
                            payload=payload,
                        )
                    )
                else:
                    row.stage = state.stage.value
                    row.payload = payload
                await session.commit()
        except SQLAlchemyError as exc:
            await logger.aerror(
                "onboarding_state_save_failed", carrier_id=state.carrier_id, error=str(exc)
            )
            raise PersistError("Could not save onboarding progress") from exc

    async def delete(self, carrier_id: str) -> None:
        try:
            async with self.session_factory() as session:
                await session.execute(
                    delete(OnboardingStateModel).where(
                        OnboardingStateModel.carrier_id == carrier_id
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistError("Could not clear onboarding progress") from exc

    async def list_carrier_ids(self) -> list[str]:
        async with self.session_factory() as session:
            result = await session.execute(select(OnboardingStateModel.carrier_id))
            return list(result.scalars())
