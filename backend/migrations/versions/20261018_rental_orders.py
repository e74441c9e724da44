"""Rental orders: branches, profiles, customers, orders, items, payments, audit

Revision ID: 20261018_rental
Revises:
Create Date: 2026-10-18

This migration adds:
1. Branches and staff profiles (role + per-staff GST/invoicing settings)
2. Customers (10-digit phone, optional ID proof)
3. Orders with status CHECK, money columns and version_id
4. Order items with return tracking
5. Append-only payment transactions and order audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_rental'
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUSES = (
    "'scheduled', 'active', 'pending_return', 'completed', "
    "'completed_with_issues', 'cancelled', 'partially_returned', 'flagged'"
)
TRANSACTION_TYPES = "'deposit_collected', 'deposit_refund', 'outstanding_collected'"


def upgrade():
    # ==========================================================================
    # 1. BRANCHES AND PROFILES
    # ==========================================================================
    op.create_table('branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table('profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('gst_number', sa.String(length=32), nullable=True),
        sa.Column('gst_enabled', sa.Boolean(), nullable=True),
        sa.Column('gst_rate', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('gst_included', sa.Boolean(), nullable=True),
        sa.Column('upi_id', sa.String(length=128), nullable=True),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('company_address', sa.String(length=255), nullable=True),
        sa.Column('show_invoice_terms', sa.Boolean(), nullable=True),
        sa.Column('show_invoice_qr', sa.Boolean(), nullable=True),
        sa.CheckConstraint("role IN ('super_admin', 'branch_admin', 'staff')", name='profiles_role_check'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('profiles', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_profiles_branch_id'), ['branch_id'], unique=False)

    # ==========================================================================
    # 2. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_number', sa.String(length=32), nullable=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=10), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('id_proof_type', sa.String(length=16), nullable=True),
        sa.Column('id_proof_number', sa.String(length=64), nullable=True),
        sa.Column('id_proof_front_url', sa.String(length=512), nullable=True),
        sa.Column('id_proof_back_url', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index('ix_customers_name', ['name'], unique=False)
        batch_op.create_index(batch_op.f('ix_customers_phone'), ['phone'], unique=False)

    # ==========================================================================
    # 3. ORDERS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('booking_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('start_datetime', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_datetime', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('gst_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('gst_rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('gst_included', sa.Boolean(), nullable=False),
        sa.Column('late_fee', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('damage_fee_total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('security_deposit_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('security_deposit_collected', sa.Boolean(), nullable=False),
        sa.Column('security_deposit_refunded', sa.Boolean(), nullable=False),
        sa.Column('security_deposit_refunded_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('security_deposit_refund_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('additional_amount_collected', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('deposit_balance', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint(f"status IN ({ORDER_STATUSES})", name='orders_status_check'),
        sa.CheckConstraint('deposit_balance >= 0', name='orders_deposit_balance_check'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['staff_id'], ['profiles.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_invoice_number'), ['invoice_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_orders_branch_id'), ['branch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_staff_id'), ['staff_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)
        batch_op.create_index('ix_orders_branch_status_created', ['branch_id', 'status', 'created_at'], unique=False)

    # ==========================================================================
    # 4. ORDER ITEMS
    # ==========================================================================
    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('photo_url', sa.String(length=512), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_per_day', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('days', sa.Integer(), nullable=False),
        sa.Column('line_total', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('return_status', sa.String(length=32), nullable=False),
        sa.Column('returned_quantity', sa.Integer(), nullable=False),
        sa.Column('actual_return_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('late_return', sa.Boolean(), nullable=True),
        sa.Column('damage_fee', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('damage_description', sa.Text(), nullable=True),
        sa.Column('missing_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint(
            "return_status IN ('not_yet_returned', 'returned', 'missing')",
            name='order_items_return_status_check',
        ),
        sa.CheckConstraint(
            'returned_quantity >= 0 AND returned_quantity <= quantity',
            name='order_items_returned_quantity_check',
        ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_items_order_id'), ['order_id'], unique=False)

    # ==========================================================================
    # 5. PAYMENT TRANSACTIONS AND AUDIT TRAIL
    # ==========================================================================
    op.create_table('payment_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('method', sa.String(length=32), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('amount > 0', name='payment_transactions_amount_check'),
        sa.CheckConstraint(f"transaction_type IN ({TRANSACTION_TYPES})", name='payment_transactions_type_check'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payment_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_transactions_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payment_transactions_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_payment_transactions_order_type', ['order_id', 'transaction_type'], unique=False)

    op.create_table('order_return_audit',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('previous_status', sa.String(length=32), nullable=True),
        sa.Column('new_status', sa.String(length=32), nullable=True),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_return_audit', schema=None) as batch_op:
        batch_op.create_index('ix_order_return_audit_order_created', ['order_id', 'created_at'], unique=False)


def downgrade():
    op.drop_table('order_return_audit')
    op.drop_table('payment_transactions')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('customers')
    op.drop_table('profiles')
    op.drop_table('branches')
