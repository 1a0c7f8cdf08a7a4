"""Cart, product tags and attributes, loyalty points; one product-level alert rule per product

Revision ID: 20261020_cart_taxonomy_points
Revises: 20261019_initial
Create Date: 2026-10-20

This migration:
1. Adds users.points and coupons.points_cost (both >= 0)
2. Creates points_records (append-only points ledger)
3. Creates cart_items
4. Creates product_tags, product_tag_relations, product_attributes,
   product_attribute_values
5. Adds a partial unique index so inventory_alerts holds at most one
   product-level (sku_id IS NULL) rule per product
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261020_cart_taxonomy_points'
down_revision = '20261019_initial'
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=nullable)


def upgrade():
    # ==========================================================================
    # 1. POINTS BALANCE / COUPON PRICE
    # ==========================================================================
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.add_column(sa.Column('points', sa.Integer(), nullable=False, server_default='0'))
        batch_op.create_check_constraint('ck_users_points_non_negative', 'points >= 0')

    with op.batch_alter_table('coupons', schema=None) as batch_op:
        batch_op.add_column(sa.Column('points_cost', sa.Integer(), nullable=False, server_default='0'))
        batch_op.create_check_constraint('ck_coupons_points_cost_non_negative', 'points_cost >= 0')

    # ==========================================================================
    # 2. POINTS LEDGER
    # ==========================================================================
    op.create_table('points_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('coupon_id', sa.Integer(), nullable=True),
        sa.Column('operator_id', sa.Integer(), nullable=True),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ),
        sa.ForeignKeyConstraint(['operator_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('points_records', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_points_records_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_points_records_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_points_records_order_id'), ['order_id'], unique=False)
        batch_op.create_index('ix_points_records_user_created', ['user_id', 'created_at'], unique=False)

    # ==========================================================================
    # 3. CART
    # ==========================================================================
    op.create_table('cart_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.CheckConstraint('quantity > 0', name='ck_cart_items_quantity_positive'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'product_id', name='uq_cart_items_user_product'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cart_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cart_items_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cart_items_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 4. TAGS / ATTRIBUTES
    # ==========================================================================
    op.create_table('product_tags',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('color', sa.String(length=16), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table('product_tag_relations',
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('tag_id', sa.Integer(), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['tag_id'], ['product_tags.id'], ),
        sa.PrimaryKeyConstraint('product_id', 'tag_id')
    )
    with op.batch_alter_table('product_tag_relations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_tag_relations_tag_id'), ['tag_id'], unique=False)

    op.create_table('product_attributes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('input_type', sa.String(length=16), nullable=False, server_default='text'),
        sa.Column('is_required', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('options', sa.JSON(), nullable=True),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table('product_attribute_values',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('attribute_id', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['attribute_id'], ['product_attributes.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'attribute_id', name='uq_product_attribute_values_product_attribute'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_attribute_values', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_product_attribute_values_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_product_attribute_values_attribute_id'), ['attribute_id'], unique=False)

    # ==========================================================================
    # 5. ALERT RULES: one product-level rule per product
    # ==========================================================================
    op.create_index(
        'uq_inventory_alerts_product_level',
        'inventory_alerts',
        ['product_id'],
        unique=True,
        sqlite_where=sa.text('sku_id IS NULL'),
        postgresql_where=sa.text('sku_id IS NULL'),
    )


def downgrade():
    op.drop_index('uq_inventory_alerts_product_level', table_name='inventory_alerts')

    for table in (
        'product_attribute_values',
        'product_attributes',
        'product_tag_relations',
        'product_tags',
        'cart_items',
        'points_records',
    ):
        op.drop_table(table)

    with op.batch_alter_table('coupons', schema=None) as batch_op:
        batch_op.drop_constraint('ck_coupons_points_cost_non_negative', type_='check')
        batch_op.drop_column('points_cost')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_constraint('ck_users_points_non_negative', type_='check')
        batch_op.drop_column('points')
