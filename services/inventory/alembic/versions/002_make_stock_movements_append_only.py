"""reject updates and deletes on stock_movements

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 10:30:00.000000

"""
from alembic import op

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # PostgreSQL only; other backends rely on the ORM listeners
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute("""
        CREATE OR REPLACE FUNCTION reject_stock_movement_change() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'stock_movements is append-only: % rejected', TG_OP;
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER stock_movements_append_only
        BEFORE UPDATE OR DELETE ON stock_movements
        FOR EACH ROW EXECUTE FUNCTION reject_stock_movement_change()
    """)


def downgrade() -> None:
    if op.get_bind().dialect.name != 'postgresql':
        return

    op.execute("DROP TRIGGER IF EXISTS stock_movements_append_only ON stock_movements")
    op.execute("DROP FUNCTION IF EXISTS reject_stock_movement_change()")
