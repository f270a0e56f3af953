"""Create catalog tables.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create categories, attributes, products and stock tables."""
    # Categories table
    op.create_table(
        'categories',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(220), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )

    # Attributes and their permissible values
    op.create_table(
        'attributes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('slug', sa.String(120), nullable=False, unique=True),
    )

    op.create_table(
        'attribute_values',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attribute_id', sa.String(36),
                  sa.ForeignKey('attributes.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('value', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(220), nullable=False),
    )

    # Products table
    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(500), nullable=False),
        sa.Column('slug', sa.String(550), nullable=False, unique=True),
        sa.Column('sku', sa.String(100), nullable=True, index=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_new', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_trending', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_best_seller', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('category_id', sa.String(36),
                  sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('images', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('price >= 0', name='ck_products_price_non_negative'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('discount >= 0 AND discount <= 100', name='ck_products_discount_range'),
    )

    # Product attribute assignments
    op.create_table(
        'product_attributes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('attribute_id', sa.String(36),
                  sa.ForeignKey('attributes.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('value_id', sa.String(36),
                  sa.ForeignKey('attribute_values.id', ondelete='CASCADE'), nullable=True),
        sa.Column('custom_value', sa.String(500), nullable=True),
    )

    # Restock records
    op.create_table(
        'restocks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_id', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.CheckConstraint('quantity > 0', name='ck_restocks_quantity_positive'),
    )

    # Stock movement audit log
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36),
                  sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(50), nullable=False),
        sa.Column('user_id', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )


def downgrade() -> None:
    """Drop catalog tables."""
    op.drop_table('stock_movements')
    op.drop_table('restocks')
    op.drop_table('product_attributes')
    op.drop_table('products')
    op.drop_table('attribute_values')
    op.drop_table('attributes')
    op.drop_table('categories')
