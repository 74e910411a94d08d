"""create_order_fulfillment

Revision ID: 001_order_fulfillment
Revises:
Create Date: 2026-10-19

Creates the order fulfillment schema: users and products as read by
checkout, orders with their frozen item and trade-in lines, the order
history ledger, and the trade-in catalog and conditions.

The partial unique index on trade_in_catalog(product_id) WHERE is_active
guarantees at most one active payout entry per product.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_order_fulfillment'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = ('new', 'preparing', 'ready', 'delivering', 'finished', 'canceled')
USER_ROLES = ('client', 'admin', 'manager', 'courier')


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def _status(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Enum(*ORDER_STATUSES, name='order_status', native_enum=False, length=20),
        nullable=nullable,
    )


def _role(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.Enum(*USER_ROLES, name='user_role', native_enum=False, length=20),
        nullable=nullable,
    )


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('full_name', sa.String(150), nullable=False),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('phone', sa.String(40), nullable=True),
        _role('role'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        *_timestamps(),
    )
    op.create_index('idx_users_role', 'users', ['role'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('price >= 0', name='chk_product_price_non_negative'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        _status('status'),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('manager_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('courier_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('contact_name', sa.String(150), nullable=True),
        sa.Column('delivery_phone', sa.String(40), nullable=False),
        sa.Column('delivery_address', sa.String(500), nullable=False),
        sa.Column('comment_client', sa.Text(), nullable=True),
        sa.Column('comment_internal', sa.Text(), nullable=True),
        sa.Column('canceled_reason', sa.Text(), nullable=True),
        sa.Column('total_items', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('manager_taken_at', sa.DateTime(), nullable=True),
        sa.Column('ready_at', sa.DateTime(), nullable=True),
        sa.Column('courier_taken_at', sa.DateTime(), nullable=True),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('total_discount >= 0', name='chk_order_discount_non_negative'),
        sa.CheckConstraint('total_discount <= total_items', name='chk_order_discount_within_items'),
    )
    op.create_index('idx_orders_status_created', 'orders', ['status', 'created_at'])
    op.create_index('idx_orders_client_created', 'orders', ['client_id', 'created_at'])
    op.create_index('idx_orders_manager', 'orders', ['manager_id'])
    op.create_index('idx_orders_courier', 'orders', ['courier_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint('quantity > 0', name='chk_order_item_quantity_positive'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_trade_in_items',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('condition_code', sa.String(32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('base_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('percent', sa.Numeric(6, 2), nullable=False),
        sa.Column('unit_discount', sa.Numeric(10, 2), nullable=False),
        sa.Column('line_discount', sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint('quantity > 0', name='chk_trade_in_item_quantity_positive'),
    )
    op.create_index('ix_order_trade_in_items_order_id', 'order_trade_in_items', ['order_id'])

    op.create_table(
        'order_history',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('changed_at', sa.DateTime(), nullable=False),
        _status('old_status', nullable=True),
        _status('new_status'),
        sa.Column('changed_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        _role('changed_by_role', nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
    )
    op.create_index('idx_order_history_order_changed', 'order_history', ['order_id', 'changed_at'])

    op.create_table(
        'trade_in_catalog',
        sa.Column('id', sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('reference_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('base_discount_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('reference_price >= 0', name='chk_trade_in_reference_price'),
        sa.CheckConstraint(
            'base_discount_amount IS NULL OR base_discount_amount >= 0',
            name='chk_trade_in_base_discount',
        ),
    )
    op.create_index('idx_trade_in_catalog_product', 'trade_in_catalog', ['product_id'])
    op.create_index(
        'uq_trade_in_catalog_active_product',
        'trade_in_catalog',
        ['product_id'],
        unique=True,
        postgresql_where=sa.text('is_active'),
    )

    op.create_table(
        'trade_in_conditions',
        sa.Column('code', sa.String(32), primary_key=True),
        sa.Column('percent', sa.Numeric(6, 2), nullable=False),
        sa.Column('label', sa.String(100), nullable=True),
        sa.CheckConstraint('percent >= 0 AND percent <= 1000', name='chk_trade_in_condition_percent'),
    )


def downgrade() -> None:
    op.drop_table('trade_in_conditions')
    op.drop_index('uq_trade_in_catalog_active_product', table_name='trade_in_catalog')
    op.drop_index('idx_trade_in_catalog_product', table_name='trade_in_catalog')
    op.drop_table('trade_in_catalog')
    op.drop_index('idx_order_history_order_changed', table_name='order_history')
    op.drop_table('order_history')
    op.drop_index('ix_order_trade_in_items_order_id', table_name='order_trade_in_items')
    op.drop_table('order_trade_in_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('idx_orders_courier', table_name='orders')
    op.drop_index('idx_orders_manager', table_name='orders')
    op.drop_index('idx_orders_client_created', table_name='orders')
    op.drop_index('idx_orders_status_created', table_name='orders')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_index('idx_users_role', table_name='users')
    op.drop_table('users')
