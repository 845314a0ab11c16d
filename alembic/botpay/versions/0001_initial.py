"""initial botpay schema

Revision ID: 0001_botpay
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_botpay"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "bots",
        sa.Column("bot_id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("token", sa.String(), nullable=False),
        sa.Column("api_key", sa.String(), nullable=False),
        sa.Column("webhook_secret", sa.String(), nullable=False),
        sa.Column("allowed_currencies", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("registered_by", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("bot_id"),
    )
    op.create_index("ix_bots_name", "bots", ["name"], unique=True)
    op.create_index("ix_bots_token", "bots", ["token"], unique=True)
    op.create_index("ix_bots_registered_by", "bots", ["registered_by"])

    op.create_table(
        "payments",
        sa.Column("payment_id", sa.String(), nullable=False),
        sa.Column("gateway_payment_id", sa.String(), nullable=True),
        sa.Column("owner_bot_id", sa.String(), nullable=False),
        sa.Column("beneficiary_id", sa.String(), nullable=False),
        sa.Column("currency", sa.String(length=16), nullable=False),
        sa.Column("requested_amount", sa.Numeric(20, 8), nullable=False),
        sa.Column("crypto_amount", sa.Numeric(30, 12), nullable=False),
        sa.Column("address", sa.String(), nullable=False),
        sa.Column("payment_url", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("tx_hash", sa.String(), nullable=True),
        sa.Column("raw_webhook_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["owner_bot_id"], ["bots.bot_id"]),
        sa.PrimaryKeyConstraint("payment_id"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'failed', 'expired')",
            name="ck_payments_status",
        ),
        sa.CheckConstraint(
            "(status = 'confirmed') = (tx_hash IS NOT NULL)",
            name="ck_payments_tx_hash_confirmed",
        ),
    )
    op.create_index("ix_payments_gateway_payment_id", "payments", ["gateway_payment_id"], unique=True)
    op.create_index("ix_payments_owner_bot_id", "payments", ["owner_bot_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_expires_at", "payments", ["expires_at"])
    op.create_index(
        "ix_payments_owner_beneficiary_status",
        "payments",
        ["owner_bot_id", "beneficiary_id", "status"],
    )

    op.create_table(
        "payment_timeline",
        sa.Column("timeline_id", sa.String(), nullable=False),
        sa.Column("payment_id", sa.String(), nullable=False),
        sa.Column("from_state", sa.String(), nullable=True),
        sa.Column("to_state", sa.String(), nullable=False),
        sa.Column("reason", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.payment_id"]),
        sa.PrimaryKeyConstraint("timeline_id"),
    )
    op.create_index("ix_payment_timeline_payment_id", "payment_timeline", ["payment_id"])


def downgrade() -> None:
    op.drop_index("ix_payment_timeline_payment_id", table_name="payment_timeline")
    op.drop_table("payment_timeline")
    op.drop_index("ix_payments_owner_beneficiary_status", table_name="payments")
    op.drop_index("ix_payments_expires_at", table_name="payments")
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_owner_bot_id", table_name="payments")
    op.drop_index("ix_payments_gateway_payment_id", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_bots_registered_by", table_name="bots")
    op.drop_index("ix_bots_token", table_name="bots")
    op.drop_index("ix_bots_name", table_name="bots")
    op.drop_table("bots")
