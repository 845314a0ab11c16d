"""forbid deleting payments and their timeline

Revision ID: 0002_payments_retained
Revises: 0001_botpay
Create Date: 2026-10-18
"""

from alembic import op


revision = "0002_payments_retained"
down_revision = "0001_botpay"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE OR REPLACE FUNCTION prevent_payment_delete()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION '% on % is not allowed; rows are retained for audit', TG_OP, TG_TABLE_NAME;
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_payments_retained
        BEFORE DELETE ON payments
        FOR EACH ROW
        EXECUTE FUNCTION prevent_payment_delete();
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_payment_timeline_append_only
        BEFORE UPDATE OR DELETE ON payment_timeline
        FOR EACH ROW
        EXECUTE FUNCTION prevent_payment_delete();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_payment_timeline_append_only ON payment_timeline;")
    op.execute("DROP TRIGGER IF EXISTS trg_payments_retained ON payments;")
    op.execute("DROP FUNCTION IF EXISTS prevent_payment_delete();")
