"""make terminal payment statuses write-once

Revision ID: 0002_terminal_status_guard
Revises: 0001_payments
Create Date: 2026-10-19
"""

from alembic import op


revision = "0002_terminal_status_guard"
down_revision = "0001_payments"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE OR REPLACE FUNCTION prevent_terminal_status_change()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            IF OLD.status <> 'PENDING' AND NEW.status IS DISTINCT FROM OLD.status THEN
                RAISE EXCEPTION 'payment % is terminal (%); status change to % is not allowed',
                    OLD.id, OLD.status, NEW.status;
            END IF;
            RETURN NEW;
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_payments_terminal_status
        BEFORE UPDATE ON payments
        FOR EACH ROW
        EXECUTE FUNCTION prevent_terminal_status_change();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_payments_terminal_status ON payments;")
    op.execute("DROP FUNCTION IF EXISTS prevent_terminal_status_change();")
