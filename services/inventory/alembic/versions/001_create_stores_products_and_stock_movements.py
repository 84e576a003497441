"""create stores, products and stock_movements tables

Revision ID: 001
Revises: 
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('address', sa.Text()),
        sa.Column('phone', sa.Text()),
        sa.Column('email', sa.Text()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('sku', sa.Text(), nullable=False, unique=True),
        sa.Column('category', sa.Text()),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('unit_price >= 0', name='non_negative_price'),
    )
    op.create_index('idx_products_category', 'products', ['category'])

    # Append-only ledger; current stock is always derived from these rows
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(20), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.CheckConstraint('quantity > 0', name='positive_quantity'),
        sa.CheckConstraint(
            "movement_type IN ('STOCK_IN', 'SALE', 'MANUAL_REMOVAL')",
            name='movement_type_valid'
        ),
    )
    op.create_index('idx_stock_movements_store_product', 'stock_movements', ['store_id', 'product_id'])
    op.create_index('idx_stock_movements_created_at', 'stock_movements', ['created_at'])


def downgrade() -> None:
    op.drop_index('idx_stock_movements_created_at', table_name='stock_movements')
    op.drop_index('idx_stock_movements_store_product', table_name='stock_movements')
    op.drop_table('stock_movements')
    op.drop_index('idx_products_category', table_name='products')
    op.drop_table('products')
    op.drop_table('stores')
