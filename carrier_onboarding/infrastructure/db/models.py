from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Enum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class VerificationStatus(str, enum.Enum):
    """Where a finalized carrier stands with the marketplace."""

    VERIFIED = "verified"
    PENDING_ATTESTATION = "pending_attestation"


class OnboardingStateModel(Base):
    """In-progress onboarding, one row per carrier, payload is the flat workflow record."""

    __tablename__ = "onboarding_states"

    carrier_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    stage: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<OnboardingStateModel(carrier_id={self.carrier_id}, stage={self.stage})>"


class CarrierModel(Base):
    """Finalized carrier profile; last write wins per user."""

    __tablename__ = "carriers"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    mc_number: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    dba_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    business_email: Mapped[str] = mapped_column(String(255), nullable=False)
    authority_status: Mapped[str] = mapped_column(String(16), nullable=False)
    authority_granted_on: Mapped[date] = mapped_column(Date, nullable=False)
    fleet_size: Mapped[int] = mapped_column(Integer, nullable=False)
    safety_rating: Mapped[str] = mapped_column(String(32), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    address: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    insurance_agent_email: Mapped[str] = mapped_column(String(255), nullable=False)
    identity_method: Mapped[str] = mapped_column(String(32), nullable=False)
    identity_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    payout_method: Mapped[str] = mapped_column(String(32), nullable=False)
    instant_settlement: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    linked_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    documents: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    verification_status: Mapped[VerificationStatus] = mapped_column(
        Enum(
            VerificationStatus,
            name="verification_status",
            values_callable=lambda e: [x.value for x in e],
        ),
        nullable=False,
    )
    verified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<CarrierModel(user_id={self.user_id}, mc_number={self.mc_number})>"
