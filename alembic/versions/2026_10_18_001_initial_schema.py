"""Initial schema: restaurants, customers, menu, promo codes, orders and webhook logs

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '001_initial_schema'
down_revision = None

ORDER_STATUS = ('PENDING', 'ACCEPTED', 'PREPARING', 'READY', 'OUT_FOR_DELIVERY', 'DELIVERED', 'CANCELLED', 'REJECTED')
money = sa.Numeric(10, 2)


def upgrade():
    op.create_table(
        'restaurants',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, index=True),
        sa.Column('slug', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('tax_rate', sa.Numeric(6, 4), nullable=False, server_default='0'),
        sa.Column('service_fee_rate', sa.Numeric(6, 4), nullable=False, server_default='0'),
        sa.Column('delivery_fee', money, nullable=False, server_default='0'),
        sa.Column('min_order_value', money, nullable=False, server_default='0'),
        sa.Column('enable_dine_in', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('enable_pickup', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('enable_delivery', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('integration_settings', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('restaurants.id'), nullable=False, index=True),
        sa.Column('email', sa.String(255), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('is_guest', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('restaurant_id', 'email', name='uq_customer_restaurant_email'),
    )

    op.create_table(
        'addresses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('label', sa.String(100), nullable=True),
        sa.Column('street', sa.String(255), nullable=False),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(100), nullable=False),
        sa.Column('zip_code', sa.String(20), nullable=False),
        sa.Column('country', sa.String(2), nullable=False, server_default='US'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
    )

    op.create_table(
        'menu_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('restaurants.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.String(2000), nullable=True),
        sa.Column('price', money, nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default='true', index=True),
        sa.Column('track_inventory', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('stock_quantity', sa.Integer(), nullable=True),
        sa.Column('min_stock_level', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'promo_codes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('restaurant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('restaurants.id'), nullable=False, index=True),
        sa.Column('code', sa.String(50), nullable=False, index=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('discount_type', sa.Enum('PERCENTAGE', 'FIXED', name='discounttype'), nullable=False),
        sa.Column('discount_value', money, nullable=False),
        sa.Column('min_order_value', money, nullable=False, server_default='0'),
        sa.Column('max_discount', money, nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime(), nullable=False),
        sa.Column('valid_until', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.UniqueConstraint('restaurant_id', 'code', name='uq_promo_code_restaurant_code'),
    )

    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_number', sa.String(32), nullable=False, unique=True, index=True),
        sa.Column('restaurant_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('restaurants.id'), nullable=False, index=True),
        sa.Column('customer_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('customers.id'), nullable=False, index=True),
        sa.Column('order_type', sa.Enum('DINE_IN', 'PICKUP', 'DELIVERY', name='ordertype'), nullable=False),
        sa.Column('status', sa.Enum(*ORDER_STATUS, name='orderstatus'), nullable=False, server_default='PENDING', index=True),
        sa.Column('table_number', sa.String(20), nullable=True),
        sa.Column('pickup_time', sa.DateTime(), nullable=True),
        sa.Column('delivery_address_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('addresses.id'), nullable=True),
        sa.Column('contact_phone', sa.String(50), nullable=True),
        sa.Column('special_instructions', sa.String(1000), nullable=True),
        sa.Column('subtotal', money, nullable=False, server_default='0'),
        sa.Column('tax_amount', money, nullable=False, server_default='0'),
        sa.Column('service_fee', money, nullable=False, server_default='0'),
        sa.Column('tip_amount', money, nullable=False, server_default='0'),
        sa.Column('discount_amount', money, nullable=False, server_default='0'),
        sa.Column('delivery_fee', money, nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.Enum('STRIPE', 'PAYPAL', 'CASH', name='paymentmethod'), nullable=False, index=True),
        sa.Column(
            'payment_status',
            sa.Enum('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED', name='paymentstatus'),
            nullable=False,
            server_default='PENDING',
            index=True,
        ),
        sa.Column('payment_intent_id', sa.String(255), nullable=True, index=True),
        sa.Column('promo_code_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('promo_codes.id'), nullable=True),
        sa.Column('inventory_applied', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('counted_in_orders', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('counted_in_spent', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp(), index=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    )

    # Sweeper scan
    op.create_index('idx_orders_abandoned_scan', 'orders', ['status', 'payment_status', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=False, index=True),
        sa.Column('menu_item_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('menu_items.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', money, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('line_total', money, nullable=False),
        sa.Column('customizations', sa.JSON(), nullable=True),
        sa.Column('special_instructions', sa.String(1000), nullable=True),
    )

    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=False, index=True),
        sa.Column('status', postgresql.ENUM(*ORDER_STATUS, name='orderstatus', create_type=False), nullable=False),
        sa.Column('note', sa.String(500), nullable=True),
        sa.Column('created_by', sa.String(64), nullable=False, server_default='SYSTEM'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.current_timestamp()),
    )

    op.create_table(
        'webhook_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('provider', sa.String(20), nullable=False, index=True),
        sa.Column('event_type', sa.String(100), nullable=True),
        sa.Column('event_id', sa.String(255), nullable=True, index=True),
        sa.Column('order_ref', sa.String(64), nullable=True, index=True),
        sa.Column('outcome', sa.Enum('APPLIED', 'NOOP', 'IGNORED', 'ERROR', name='webhookoutcome'), nullable=False),
        sa.Column('error', sa.String(1000), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('received_at', sa.DateTime(), server_default=sa.func.current_timestamp(), index=True),
    )


def downgrade():
    op.drop_table('webhook_logs')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_index('idx_orders_abandoned_scan', 'orders')
    op.drop_table('orders')
    op.drop_table('promo_codes')
    op.drop_table('menu_items')
    op.drop_table('addresses')
    op.drop_table('customers')
    op.drop_table('restaurants')

    for enum_name in ('webhookoutcome', 'paymentstatus', 'paymentmethod', 'orderstatus', 'ordertype', 'discounttype'):
        op.execute(f'DROP TYPE IF EXISTS {enum_name}')
