"""Initial schema: members, catalog, orders, seller ledger, gateway journal, points, offers

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration creates:
1. Members, subscriptions and badges
2. Businesses, category points config and store items
3. Store orders and order items
4. Seller balances, append-only balance transactions and the gateway-operation journal
5. QR scans, rewards and reward redemptions
6. Resale offers and seller time away
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. MEMBERS
    # ==========================================================================
    op.create_table('members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payout_account_id', sa.String(length=128), nullable=True),
        sa.Column('payout_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('points >= 0', name='ck_members_points_nonnegative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )

    op.create_table('subscriptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('plan', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('subscriptions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_subscriptions_member_id'), ['member_id'], unique=False)
        batch_op.create_index('ix_subscriptions_member_plan_status', ['member_id', 'plan', 'status'], unique=False)

    op.create_table('member_badges',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(length=64), nullable=False),
        sa.Column('awarded_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('member_id', 'slug', name='uq_member_badges_member_slug'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('member_badges', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_member_badges_member_id'), ['member_id'], unique=False)

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('businesses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('categories', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('businesses', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_businesses_member_id'), ['member_id'], unique=False)

    op.create_table('category_points_configs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('points_per_scan', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('category'),
        sqlite_autoincrement=True
    )

    op.create_table('store_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('listing_type', sa.String(length=16), nullable=False, server_default='new'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('accept_offers', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('min_offer_cents', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity >= 0', name='ck_store_items_quantity_nonnegative'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('store_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_store_items_member_id'), ['member_id'], unique=False)
        batch_op.create_index('ix_store_items_member_status', ['member_id', 'status'], unique=False)

    # ==========================================================================
    # 3. ORDERS
    # ==========================================================================
    op.create_table('store_orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('shipping_cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='paid'),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('refund_requested_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refund_reason', sa.String(length=512), nullable=True),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.Column('cancel_note', sa.String(length=512), nullable=True),
        sa.Column('delivery_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('inventory_restored_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_with_order_id', sa.Integer(), nullable=True),
        sa.Column('points_awarded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('total_cents = subtotal_cents + shipping_cost_cents', name='ck_store_orders_total'),
        sa.ForeignKeyConstraint(['buyer_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['seller_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['shipped_with_order_id'], ['store_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('store_orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_store_orders_buyer_id'), ['buyer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_store_orders_seller_id'), ['seller_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_store_orders_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_store_orders_payment_reference'), ['payment_reference'], unique=False)
        batch_op.create_index('ix_store_orders_seller_status', ['seller_id', 'status'], unique=False)
        batch_op.create_index('ix_store_orders_buyer_created', ['buyer_id', 'created_at'], unique=False)

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('store_item_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('fulfillment_type', sa.String(length=16), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['store_orders.id'], ),
        sa.ForeignKeyConstraint(['store_item_id'], ['store_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_items_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_items_store_item_id'), ['store_item_id'], unique=False)

    # ==========================================================================
    # 4. SELLER LEDGER + GATEWAY JOURNAL
    # ==========================================================================
    op.create_table('seller_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_paid_out_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('reserved_cents >= 0', name='ck_seller_balances_reserved_nonnegative'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('member_id', name='uq_seller_balances_member'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('seller_balances', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_seller_balances_member_id'), ['member_id'], unique=False)

    op.create_table('gateway_operations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('gateway_amount_cents', sa.Integer(), nullable=False),
        sa.Column('ledger_amount_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=24), nullable=False, server_default='pending'),
        sa.Column('external_reference', sa.String(length=128), nullable=True),
        sa.Column('idempotency_key', sa.String(length=64), nullable=False),
        sa.Column('error_message', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['store_orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('gateway_operations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_gateway_operations_member_id'), ['member_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_gateway_operations_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_gateway_operations_status'), ['status'], unique=False)
        batch_op.create_index('ix_gateway_operations_status_created', ['status', 'created_at'], unique=False)

    op.create_table('seller_balance_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('transfer_reference', sa.String(length=128), nullable=True),
        sa.Column('gateway_operation_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['store_orders.id'], ),
        sa.ForeignKeyConstraint(['gateway_operation_id'], ['gateway_operations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'type', name='uq_seller_balance_txns_order_type'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('seller_balance_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_seller_balance_transactions_member_id'), ['member_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_seller_balance_transactions_type'), ['type'], unique=False)
        batch_op.create_index('ix_seller_balance_txns_member_created', ['member_id', 'created_at'], unique=False)

    # ==========================================================================
    # 5. POINTS ECONOMY
    # ==========================================================================
    op.create_table('qr_scans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('points_awarded', sa.Integer(), nullable=False),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('scan_day', sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('member_id', 'business_id', 'scan_day', name='uq_qr_scans_member_business_day'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('qr_scans', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_qr_scans_member_id'), ['member_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_qr_scans_business_id'), ['business_id'], unique=False)

    op.create_table('rewards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('points_required', sa.Integer(), nullable=False),
        sa.Column('redemption_limit', sa.Integer(), nullable=False),
        sa.Column('times_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cash_value_cents', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('times_redeemed <= redemption_limit', name='ck_rewards_redemption_limit'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('rewards', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_rewards_business_id'), ['business_id'], unique=False)
        batch_op.create_index('ix_rewards_status_created', ['status', 'created_at'], unique=False)

    op.create_table('reward_redemptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('reward_id', sa.Integer(), nullable=False),
        sa.Column('points_spent', sa.Integer(), nullable=False),
        sa.Column('redeemed_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.ForeignKeyConstraint(['reward_id'], ['rewards.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('reward_redemptions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_reward_redemptions_member_id'), ['member_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_reward_redemptions_reward_id'), ['reward_id'], unique=False)

    # ==========================================================================
    # 6. RESALE OFFERS + TIME AWAY
    # ==========================================================================
    op.create_table('resale_offers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_item_id', sa.Integer(), nullable=False),
        sa.Column('buyer_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('message', sa.String(length=2000), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('seller_response', sa.String(length=1000), nullable=True),
        sa.Column('counter_amount_cents', sa.Integer(), nullable=True),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['store_item_id'], ['store_items.id'], ),
        sa.ForeignKeyConstraint(['buyer_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('resale_offers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_resale_offers_store_item_id'), ['store_item_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_resale_offers_buyer_id'), ['buyer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_resale_offers_status'), ['status'], unique=False)
        batch_op.create_index('ix_resale_offers_item_buyer_status', ['store_item_id', 'buyer_id', 'status'], unique=False)

    op.create_table('seller_time_away',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('member_id', sa.Integer(), nullable=False),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('member_id', name='uq_seller_time_away_member'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('seller_time_away', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_seller_time_away_member_id'), ['member_id'], unique=False)


def downgrade():
    op.drop_table('seller_time_away')
    op.drop_table('resale_offers')
    op.drop_table('reward_redemptions')
    op.drop_table('rewards')
    op.drop_table('qr_scans')
    op.drop_table('seller_balance_transactions')
    op.drop_table('gateway_operations')
    op.drop_table('seller_balances')
    op.drop_table('order_items')
    op.drop_table('store_orders')
    op.drop_table('store_items')
    op.drop_table('category_points_configs')
    op.drop_table('businesses')
    op.drop_table('member_badges')
    op.drop_table('subscriptions')
    op.drop_table('members')
