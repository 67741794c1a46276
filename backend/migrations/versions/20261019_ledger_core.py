"""Ledger core: tenancy, stock ledger, orders, registers, wallets, rollups

Revision ID: 20261019_ledger_core
Revises:
Create Date: 2026-10-19

This migration creates:
1. Tenants, outlets, outlet settings
2. Users and manager PINs
3. Products, ingredients, recipes and the append-only stock_moves ledger
4. Customers, loyalty, orders and order items
5. Registers and register transactions
6. Wallets and wallet transfers
7. Daily closures and monthly summaries
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_ledger_core'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*names):
    return [
        sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())
        for name in names
    ]


def upgrade():
    # ==========================================================================
    # 1. TENANCY
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'], unique=True)
    op.create_index('ix_tenants_is_active', 'tenants', ['is_active'])

    op.create_table('outlets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'code', name='uq_outlets_tenant_code'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_outlets_tenant_id', 'outlets', ['tenant_id'])

    op.create_table('outlet_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outlet_id', 'key', name='uq_outlet_settings_outlet_key'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_outlet_settings_outlet_id', 'outlet_settings', ['outlet_id'])

    # ==========================================================================
    # 2. USERS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='STAFF'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])
    op.create_index('ix_users_outlet_id', 'users', ['outlet_id'])
    op.create_index('ix_users_is_active', 'users', ['is_active'])
    op.create_index('ix_users_tenant_role', 'users', ['tenant_id', 'role'])

    op.create_table('user_pins',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('pin_hash', sa.String(length=255), nullable=False),
        sa.Column('failed_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sqlite_autoincrement=True,
    )

    # ==========================================================================
    # 3. CATALOG AND STOCK LEDGER
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_stock', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outlet_id', 'sku', name='uq_products_outlet_sku'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_outlet_id', 'products', ['outlet_id'])
    op.create_index('ix_products_outlet_deleted', 'products', ['outlet_id', 'deleted_at'])

    op.create_table('ingredients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='g'),
        sa.Column('current_stock', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('cost_per_unit_cents', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outlet_id', 'name', name='uq_ingredients_outlet_name'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_ingredients_outlet_id', 'ingredients', ['outlet_id'])

    op.create_table('recipe_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('ingredient_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['ingredient_id'], ['ingredients.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'ingredient_id', name='uq_recipe_items_product_ingredient'),
        sa.CheckConstraint('quantity > 0', name='ck_recipe_items_quantity_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_recipe_items_product_id', 'recipe_items', ['product_id'])
    op.create_index('ix_recipe_items_ingredient_id', 'recipe_items', ['ingredient_id'])

    # ==========================================================================
    # 4. CUSTOMERS, LOYALTY, ORDERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'phone', name='uq_customers_tenant_phone'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_customers_tenant_id', 'customers', ['tenant_id'])

    op.create_table('loyalty_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('min_spend_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('visits_required', sa.Integer(), nullable=False, server_default='6'),
        sa.Column('reward_description', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outlet_id'),
        sqlite_autoincrement=True,
    )

    op.create_table('loyalty_progress',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('stamps', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spend_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_visits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rewards_redeemed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_visit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_id', 'outlet_id', name='uq_loyalty_progress_customer_outlet'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_loyalty_progress_customer_id', 'loyalty_progress', ['customer_id'])
    op.create_index('ix_loyalty_progress_outlet_id', 'loyalty_progress', ['outlet_id'])

    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('external_id', sa.String(length=64), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=128), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('redeems_reward', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('posted_payment_method', sa.String(length=16), nullable=True),
        sa.Column('posted_total_cents', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'received_at', 'updated_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_orders_external_id', 'orders', ['external_id'], unique=True)
    op.create_index('ix_orders_tenant_id', 'orders', ['tenant_id'])
    op.create_index('ix_orders_outlet_id', 'orders', ['outlet_id'])
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_staff_id', 'orders', ['staff_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_outlet_created', 'orders', ['outlet_id', 'created_at'])

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('modifiers', sa.JSON(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table('stock_moves',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('ingredient_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity_delta', sa.Numeric(14, 3), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('occurred_at', 'created_at'),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['ingredient_id'], ['ingredients.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('(product_id IS NULL) <> (ingredient_id IS NULL)', name='ck_stock_moves_one_item'),
        sa.CheckConstraint('quantity_delta <> 0', name='ck_stock_moves_nonzero'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_stock_moves_outlet_id', 'stock_moves', ['outlet_id'])
    op.create_index('ix_stock_moves_type', 'stock_moves', ['type'])
    op.create_index('ix_stock_moves_order_id', 'stock_moves', ['order_id'])
    op.create_index('ix_stock_moves_outlet_occurred', 'stock_moves', ['outlet_id', 'occurred_at'])
    op.create_index('ix_stock_moves_product_occurred', 'stock_moves', ['product_id', 'occurred_at'])
    op.create_index('ix_stock_moves_ingredient_occurred', 'stock_moves', ['ingredient_id', 'occurred_at'])

    # ==========================================================================
    # 5. REGISTERS
    # ==========================================================================
    op.create_table('registers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('expected_opening_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('opening_cash_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('opening_variance_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('opening_note', sa.String(length=255), nullable=True),
        sa.Column('opening_denominations', sa.JSON(), nullable=True),
        sa.Column('cash_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('upi_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('card_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('platform_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('closing_cash_cents', sa.Integer(), nullable=True),
        sa.Column('actual_cash_cents', sa.Integer(), nullable=True),
        sa.Column('variance_cents', sa.Integer(), nullable=True),
        sa.Column('variance_note', sa.String(length=255), nullable=True),
        sa.Column('variance_authorized_by_user_id', sa.Integer(), nullable=True),
        sa.Column('closing_denominations', sa.JSON(), nullable=True),
        sa.Column('opened_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('opened_at'),
        sa.Column('closed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.ForeignKeyConstraint(['variance_authorized_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['opened_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['closed_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outlet_id', 'business_date', name='uq_registers_outlet_date'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_registers_outlet_id', 'registers', ['outlet_id'])
    op.create_index('ix_registers_outlet_status', 'registers', ['outlet_id', 'status'])

    op.create_table('register_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('payment_mode', sa.String(length=16), nullable=False, server_default='CASH'),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('is_inflow', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_cents > 0', name='ck_register_transactions_amount_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_register_transactions_register_id', 'register_transactions', ['register_id'])
    op.create_index('ix_register_transactions_register_type', 'register_transactions', ['register_id', 'type'])

    # ==========================================================================
    # 6. WALLETS
    # ==========================================================================
    op.create_table('wallets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('manager_pin_hash', sa.String(length=255), nullable=True),
        sa.Column('manager_user_id', sa.Integer(), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.ForeignKeyConstraint(['manager_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outlet_id', 'type', name='uq_wallets_outlet_type'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_wallets_outlet_id', 'wallets', ['outlet_id'])

    op.create_table('wallet_transfers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('source_wallet_id', sa.Integer(), nullable=False),
        sa.Column('destination_wallet_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('authorized_by_user_id', sa.Integer(), nullable=True),
        sa.Column('initiated_by_user_id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.ForeignKeyConstraint(['source_wallet_id'], ['wallets.id']),
        sa.ForeignKeyConstraint(['destination_wallet_id'], ['wallets.id']),
        sa.ForeignKeyConstraint(['authorized_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['initiated_by_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_cents > 0', name='ck_wallet_transfers_amount_positive'),
        sa.CheckConstraint('source_wallet_id <> destination_wallet_id', name='ck_wallet_transfers_distinct'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_wallet_transfers_outlet_id', 'wallet_transfers', ['outlet_id'])
    op.create_index('ix_wallet_transfers_source_wallet_id', 'wallet_transfers', ['source_wallet_id'])
    op.create_index('ix_wallet_transfers_destination_wallet_id', 'wallet_transfers', ['destination_wallet_id'])
    op.create_index('ix_wallet_transfers_outlet_created', 'wallet_transfers', ['outlet_id', 'created_at'])

    # ==========================================================================
    # 7. ROLLUPS
    # ==========================================================================
    op.create_table('daily_closures',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('business_date', sa.Date(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('cash_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('upi_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('card_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('platform_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('order_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_expense_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('register_id', sa.Integer(), nullable=True),
        sa.Column('opening_cash_cents', sa.Integer(), nullable=True),
        sa.Column('closing_cash_cents', sa.Integer(), nullable=True),
        sa.Column('actual_cash_cents', sa.Integer(), nullable=True),
        sa.Column('variance_cents', sa.Integer(), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['users.id']),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outlet_id', 'business_date', name='uq_daily_closures_outlet_date'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_daily_closures_tenant_id', 'daily_closures', ['tenant_id'])
    op.create_index('ix_daily_closures_outlet_id', 'daily_closures', ['outlet_id'])

    op.create_table('monthly_summaries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('outlet_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.String(length=7), nullable=False),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cash_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bank_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('platform_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_expense_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('order_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('days_with_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_refreshed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id']),
        sa.ForeignKeyConstraint(['outlet_id'], ['outlets.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('outlet_id', 'month', name='uq_monthly_summaries_outlet_month'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_monthly_summaries_tenant_id', 'monthly_summaries', ['tenant_id'])
    op.create_index('ix_monthly_summaries_outlet_id', 'monthly_summaries', ['outlet_id'])


def downgrade():
    for table in (
        'monthly_summaries',
        'daily_closures',
        'wallet_transfers',
        'wallets',
        'register_transactions',
        'registers',
        'stock_moves',
        'order_items',
        'orders',
        'loyalty_progress',
        'loyalty_rules',
        'customers',
        'recipe_items',
        'ingredients',
        'products',
        'user_pins',
        'users',
        'outlet_settings',
        'outlets',
        'tenants',
    ):
        op.drop_table(table)
