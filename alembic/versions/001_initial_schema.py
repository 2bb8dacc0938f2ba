"""Initial schema — credentials, accrual/termination history, operations, relayed deposits.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "credentials",
        sa.Column("holder", sa.String(64), primary_key=True),
        sa.Column("max_quota", sa.BigInteger, nullable=False),
        sa.Column("total_accrued", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("remaining_quota", sa.BigInteger, nullable=False),
        sa.Column("cap_reached", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("lifecycle_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("issue_nonce", sa.String(128), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("terminated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "remaining_quota + total_accrued = max_quota",
            name="ck_credentials_quota_balance",
        ),
        sa.CheckConstraint("remaining_quota >= 0", name="ck_credentials_remaining_nonneg"),
        sa.CheckConstraint("total_accrued >= 0", name="ck_credentials_accrued_nonneg"),
    )

    op.create_table(
        "accrual_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("holder", sa.String(64), nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("cumulative", sa.BigInteger, nullable=False),
        sa.Column("remaining", sa.BigInteger, nullable=False),
        sa.Column("lifecycle_count", sa.BigInteger, nullable=False),
        sa.Column("op_nonce", sa.String(128), nullable=False, unique=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_accrual_events_holder", "accrual_events", ["holder"])

    op.create_table(
        "termination_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("holder", sa.String(64), nullable=False),
        sa.Column("refund_amount", sa.BigInteger, nullable=False),
        sa.Column("fee_amount", sa.BigInteger, nullable=False),
        sa.Column("total_accrued", sa.BigInteger, nullable=False),
        sa.Column("lifecycle_count", sa.BigInteger, nullable=False),
        sa.Column("automatic", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("op_nonce", sa.String(128), nullable=False, unique=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_termination_events_holder", "termination_events", ["holder"])

    op.create_table(
        "operations",
        sa.Column("nonce", sa.String(128), primary_key=True),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("holder", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="SUBMITTED"),
        sa.Column("trigger", sa.String(16), nullable=False, server_default="client"),
        sa.Column("parent_nonce", sa.String(128), nullable=True),
        sa.Column("consensus_position", sa.BigInteger, nullable=True),
        sa.Column("intent_json", sa.JSON, nullable=True),
        sa.Column("result_json", sa.JSON, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_operations_holder", "operations", ["holder"])
    op.create_index("ix_operations_status", "operations", ["status"])

    op.create_table(
        "relayed_deposits",
        sa.Column("source_event_id", sa.String(128), primary_key=True),
        sa.Column("depositor", sa.String(64), nullable=False),
        sa.Column("amount", sa.BigInteger, nullable=False),
        sa.Column("deposit_tx_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="RECEIVED"),
        sa.Column("coordinator_nonce", sa.String(128), nullable=True, unique=True),
        sa.Column("result_json", sa.JSON, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_relayed_deposits_depositor", "relayed_deposits", ["depositor"])
    op.create_index("ix_relayed_deposits_status", "relayed_deposits", ["status"])


def downgrade() -> None:
    op.drop_table("relayed_deposits")
    op.drop_table("operations")
    op.drop_table("termination_events")
    op.drop_table("accrual_events")
    op.drop_table("credentials")
