"""Initial schema: accounts and billing

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19

Creates users, password_reset_tokens, subscriptions, payment_history and
the webhook_events ledger.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create the account and billing tables."""

    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(30), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),

        # Lockout state
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('failed_login_attempts', sa.Integer, server_default='0', nullable=False),
        sa.Column('locked_at', sa.DateTime(timezone=True)),
        sa.Column('role', sa.String(20), server_default='user', nullable=False),

        # Coarse subscription state
        sa.Column('subscription_status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('subscription_ends_at', sa.DateTime(timezone=True)),
        sa.Column('stripe_customer_id', sa.String(255)),
        sa.Column('last_login', sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint('failed_login_attempts >= 0', name='ck_users_failed_attempts_non_negative'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_phone', 'users', ['phone'], unique=True)
    op.create_index('ix_users_stripe_customer_id', 'users', ['stripe_customer_id'])

    op.create_table(
        'password_reset_tokens',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean, server_default=sa.false(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_password_reset_tokens_token', 'password_reset_tokens', ['token'], unique=True)
    op.create_index('ix_password_reset_tokens_user_id', 'password_reset_tokens', ['user_id'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),

        # Stripe IDs
        sa.Column('stripe_customer_id', sa.String(255)),
        sa.Column('stripe_subscription_id', sa.String(255)),

        sa.Column('status', sa.String(30), server_default='incomplete', nullable=False),

        # Billing period dates
        sa.Column('current_period_start', sa.DateTime(timezone=True)),
        sa.Column('current_period_end', sa.DateTime(timezone=True)),
        sa.Column('cancel_at_period_end', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('trial_start', sa.DateTime(timezone=True)),
        sa.Column('trial_end', sa.DateTime(timezone=True)),
        sa.Column('is_current', sa.Boolean, server_default=sa.true(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index(
        'ix_subscriptions_stripe_subscription_id',
        'subscriptions',
        ['stripe_subscription_id'],
        unique=True,
    )
    op.create_index('ix_subscriptions_is_current', 'subscriptions', ['is_current'])

    # At most one current record per user
    op.execute(
        "CREATE UNIQUE INDEX ux_subscriptions_one_current_per_user "
        "ON subscriptions (user_id) WHERE is_current"
    )

    op.create_table(
        'payment_history',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source_event_id', sa.String(255), nullable=False),
        sa.Column('stripe_invoice_id', sa.String(255)),
        sa.Column('stripe_session_id', sa.String(255)),
        sa.Column('amount_cents', sa.Integer, server_default='0', nullable=False),
        sa.Column('currency', sa.String(3), server_default='brl', nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('description', sa.String(255)),
        *_timestamps(),
    )
    op.create_index('ix_payment_history_user_id', 'payment_history', ['user_id'])
    op.create_index(
        'ix_payment_history_source_event_id',
        'payment_history',
        ['source_event_id'],
        unique=True,
    )

    op.create_table(
        'webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('payload', sa.JSON),
        sa.Column('processed', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True)),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_webhook_events_processed_at', 'webhook_events', ['processed_at'])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('webhook_events')
    op.drop_table('payment_history')
    op.execute('DROP INDEX IF EXISTS ux_subscriptions_one_current_per_user')
    op.drop_table('subscriptions')
    op.drop_table('password_reset_tokens')
    op.drop_table('users')
