"""initial schema - create all tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # Users (role as VARCHAR, not enum)
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(30), nullable=False, server_default='buyer'),
        *timestamps(),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('producer_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('producer_assumes_installments', sa.Boolean(), nullable=False, server_default=sa.false()),
        *timestamps(),
    )

    # Fee configuration
    op.create_table(
        'platform_settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('default_security_reserve_percent', sa.Float(), nullable=True),
        sa.Column('default_security_reserve_days', sa.Integer(), nullable=True),
        sa.Column('default_fixed_fee_cents', sa.Integer(), nullable=True),
        sa.Column('default_withdrawal_fee_cents', sa.Integer(), nullable=True),
        sa.Column('default_pix_fee_percent', sa.Float(), nullable=True),
        sa.Column('default_boleto_fee_percent', sa.Float(), nullable=True),
        sa.Column('default_card_fee_percent', sa.Float(), nullable=True),
        sa.Column('default_pix_release_days', sa.Integer(), nullable=True),
        sa.Column('default_boleto_release_days', sa.Integer(), nullable=True),
        sa.Column('default_card_release_days', sa.Integer(), nullable=True),
        sa.Column('card_installment_interest_rate', sa.Float(), nullable=True),
        *timestamps(),
    )

    op.create_table(
        'producer_settings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('producer_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False, unique=True, index=True),
        sa.Column('custom_security_reserve_percent', sa.Float(), nullable=True),
        sa.Column('custom_security_reserve_days', sa.Integer(), nullable=True),
        sa.Column('custom_fixed_fee_cents', sa.Integer(), nullable=True),
        sa.Column('custom_withdrawal_fee_cents', sa.Integer(), nullable=True),
        *timestamps(),
    )

    op.create_table(
        'producer_balances',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('producer_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False, unique=True, index=True),
        sa.Column('balance_cents', sa.Integer(), nullable=False, server_default='0'),
        *timestamps(),
    )

    # Members area
    op.create_table(
        'spaces',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('producer_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        *timestamps(),
    )

    op.create_table(
        'space_products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('space_id', sa.String(36), sa.ForeignKey('spaces.id'), nullable=False, index=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False, index=True),
        sa.Column('product_type', sa.String(20), nullable=False, server_default='principal'),
        *timestamps(),
    )

    op.create_table(
        'cohorts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('space_id', sa.String(36), sa.ForeignKey('spaces.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        *timestamps(),
    )

    op.create_table(
        'enrollments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('cohort_id', sa.String(36), sa.ForeignKey('cohorts.id'), nullable=True),
        sa.UniqueConstraint('user_id', 'product_id', name='uq_enrollments_user_product'),
        *timestamps(),
    )

    # Ticket inventory
    op.create_table(
        'ticket_batches',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_quantity', sa.Integer(), nullable=False),
        sa.Column('sold_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('auto_advance_to_next', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint('sold_quantity <= total_quantity', name='ck_ticket_batches_not_oversold'),
        *timestamps(),
    )

    # Orders (status and payment_method as VARCHAR)
    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=False, index=True),
        sa.Column('buyer_id', sa.String(36), nullable=True),
        sa.Column('buyer_email', sa.String(255), nullable=False),
        sa.Column('gateway_identifier', sa.String(50), nullable=False),
        sa.Column('gateway_transaction_id', sa.String(255), nullable=False),
        sa.Column('gateway_status', sa.String(100), nullable=True),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending_payment'),
        sa.Column('payment_method', sa.String(30), nullable=False),
        sa.Column('amount_total_cents', sa.Integer(), nullable=False),
        sa.Column('original_product_price_cents', sa.Integer(), nullable=True),
        sa.Column('installments_chosen', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('ticket_batch_id', sa.String(36), sa.ForeignKey('ticket_batches.id'), nullable=True),
        sa.Column('event_attendees', sa.JSON(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('release_date', sa.Date(), nullable=True),
        sa.Column('platform_fee_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('producer_share_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('security_reserve_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payout_status', sa.String(30), nullable=True),
        sa.UniqueConstraint('gateway_identifier', 'gateway_transaction_id', name='uq_orders_gateway_transaction'),
        *timestamps(),
    )

    op.create_table(
        'transaction_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=False, index=True),
        sa.Column('event_type', sa.String(50), nullable=False, index=True),
        sa.Column('metadata', sa.JSON(), nullable=False),
        *timestamps(),
    )

    # Outbound webhooks
    op.create_table(
        'webhook_endpoints',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('producer_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('secret', sa.String(255), nullable=False),
        sa.Column('events', sa.JSON(), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *timestamps(),
    )

    op.create_table(
        'webhook_delivery_jobs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('webhook_endpoint_id', sa.String(36), sa.ForeignKey('webhook_endpoints.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('transaction_event_id', sa.String(36), sa.ForeignKey('transaction_events.id'), nullable=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claim_token', sa.String(36), nullable=True, index=True),
        *timestamps(),
    )
    op.create_index('ix_webhook_delivery_jobs_due', 'webhook_delivery_jobs', ['status', 'next_attempt_at'])

    op.create_table(
        'webhook_event_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('endpoint_id', sa.String(36), sa.ForeignKey('webhook_endpoints.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('job_id', sa.String(36), nullable=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(30), nullable=False),
        sa.Column('attempt', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('response_code', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.Text(), nullable=True),
        *timestamps(),
    )

    # Notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id'), nullable=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        *timestamps(),
    )

    op.create_table(
        'notification_preferences',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('event_type', sa.String(50), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('user_id', 'event_type', name='uq_notification_preferences_user_event'),
        *timestamps(),
    )


def downgrade() -> None:
    op.drop_table('notification_preferences')
    op.drop_table('notifications')
    op.drop_table('webhook_event_logs')
    op.drop_index('ix_webhook_delivery_jobs_due', table_name='webhook_delivery_jobs')
    op.drop_table('webhook_delivery_jobs')
    op.drop_table('webhook_endpoints')
    op.drop_table('transaction_events')
    op.drop_table('orders')
    op.drop_table('ticket_batches')
    op.drop_table('enrollments')
    op.drop_table('cohorts')
    op.drop_table('space_products')
    op.drop_table('spaces')
    op.drop_table('producer_balances')
    op.drop_table('producer_settings')
    op.drop_table('platform_settings')
    op.drop_table('products')
    op.drop_table('users')
