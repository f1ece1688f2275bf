from __future__ import annotations

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carrier_onboarding.domain.errors import PersistError
from carrier_onboarding.domain.models import ConsolidatedProfile, IdentityMethod
from carrier_onboarding.infrastructure.db.models import CarrierModel, VerificationStatus

logger = structlog.get_logger(__name__)


class CarrierProfileRepository:
    """System of record for finalized carriers, one row per user."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def finalize(self, carrier_id: str, profile: ConsolidatedProfile) -> None:
        """Upsert the profile in a single transaction; a concurrent finalize simply wins."""
        values = _profile_columns(profile)
        try:
            async with self.session_factory() as session:
                row = await session.get(CarrierModel, carrier_id)
                if row is None:
                    session.add(CarrierModel(user_id=carrier_id, **values))
                else:
                    for column, value in values.items():
                        setattr(row, column, value)
                await session.commit()
        except SQLAlchemyError as exc:
            await logger.aerror("carrier_finalize_failed", carrier_id=carrier_id, error=str(exc))
            raise PersistError("Failed to complete onboarding. Please try again.") from exc

        await logger.ainfo(
            "carrier_finalized",
            carrier_id=carrier_id,
            mc_number=profile.record.identifying_number,
            verification_status=values["verification_status"].value,
        )

    async def get(self, carrier_id: str) -> CarrierModel | None:
        async with self.session_factory() as session:
            return await session.get(CarrierModel, carrier_id)


def _profile_columns(profile: ConsolidatedProfile) -> dict:
    record = profile.record
    attested = profile.identity_method == IdentityMethod.THIRD_PARTY_ATTESTATION
    status = (
        VerificationStatus.PENDING_ATTESTATION
        if attested and not profile.identity_confirmed
        else VerificationStatus.VERIFIED
    )
    return {
        "mc_number": record.identifying_number,
        "legal_name": record.legal_name,
        "dba_name": record.trade_name,
        "business_email": profile.business_email,
        "authority_status": record.authority_status.value,
        "authority_granted_on": record.authority_granted_on,
        "fleet_size": record.fleet_size,
        "safety_rating": record.safety_rating.value,
        "contact_email": record.contact_email,
        "contact_phone": record.contact_phone,
        "address": {
            "street": record.address.street,
            "city": record.address.city,
            "state": record.address.state,
            "zip_code": record.address.zip_code,
        },
        "insurance_agent_email": record.insurance_agent_email,
        "identity_method": profile.identity_method.value,
        "identity_confirmed": profile.identity_confirmed,
        "payout_method": profile.payout_method.value,
        "instant_settlement": profile.instant_settlement,
        "linked_account_id": profile.linked_account_id,
        "documents": [slot.to_record() for slot in profile.documents],
        "risk_score": profile.risk_score,
        "verification_status": status,
        "verified_at": profile.verified_at,
    }
