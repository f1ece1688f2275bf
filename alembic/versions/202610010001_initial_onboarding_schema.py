"""Onboarding progress and finalized carrier profiles

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "202610010001"
down_revision = None
branch_labels = None
depends_on = None

verification_status_enum = sa.Enum(
    "verified",
    "pending_attestation",
    name="verification_status",
)


def upgrade() -> None:
    op.create_table(
        "onboarding_states",
        sa.Column("carrier_id", sa.String(length=64), primary_key=True),
        sa.Column("stage", sa.String(length=32), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_onboarding_states_stage", "onboarding_states", ["stage"])

    op.create_table(
        "carriers",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("mc_number", sa.String(length=16), nullable=False),
        sa.Column("legal_name", sa.String(length=255), nullable=False),
        sa.Column("dba_name", sa.String(length=255), nullable=True),
        sa.Column("business_email", sa.String(length=255), nullable=False),
        sa.Column("authority_status", sa.String(length=16), nullable=False),
        sa.Column("authority_granted_on", sa.Date(), nullable=False),
        sa.Column("fleet_size", sa.Integer(), nullable=False),
        sa.Column("safety_rating", sa.String(length=32), nullable=False),
        sa.Column("contact_email", sa.String(length=255), nullable=False),
        sa.Column("contact_phone", sa.String(length=32), nullable=False),
        sa.Column("address", sa.JSON(), nullable=False),
        sa.Column("insurance_agent_email", sa.String(length=255), nullable=False),
        sa.Column("identity_method", sa.String(length=32), nullable=False),
        sa.Column("identity_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("payout_method", sa.String(length=32), nullable=False),
        sa.Column("instant_settlement", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("linked_account_id", sa.String(length=64), nullable=True),
        sa.Column("documents", sa.JSON(), nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("verification_status", verification_status_enum, nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_carriers_mc_number", "carriers", ["mc_number"])


def downgrade() -> None:
    op.drop_index("ix_carriers_mc_number", table_name="carriers")
    op.drop_table("carriers")
    verification_status_enum.drop(op.get_bind(), checkfirst=True)
    op.drop_index("ix_onboarding_states_stage", table_name="onboarding_states")
    op.drop_table("onboarding_states")
