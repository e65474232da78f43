"""initial payments schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('uuid'),
        sa.UniqueConstraint('email'),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    # Create creator_profiles table
    op.create_table(
        'creator_profiles',
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('stripe_account_id', sa.String(255), nullable=True),
        sa.Column('payouts_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('onboarding_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('subscriber_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lifetime_earnings_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('uuid'),
        sa.ForeignKeyConstraint(['user_id'], ['users.uuid']),
        sa.UniqueConstraint('user_id'),
        sa.UniqueConstraint('stripe_account_id'),
        sa.CheckConstraint('subscriber_count >= 0', name='ck_creator_profiles_subscriber_count'),
    )

    # Create subscriptions table
    op.create_table(
        'subscriptions',
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='active'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=False),
        sa.Column('subscriber_id', sa.String(36), nullable=False),
        sa.Column('creator_id', sa.String(36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('uuid'),
        sa.ForeignKeyConstraint(['subscriber_id'], ['users.uuid']),
        sa.ForeignKeyConstraint(['creator_id'], ['users.uuid']),
        sa.UniqueConstraint('stripe_subscription_id'),
    )
    op.create_index('idx_subscription_subscriber_id', 'subscriptions', ['subscriber_id'])
    op.create_index('idx_subscription_creator_id', 'subscriptions', ['creator_id'])
    op.create_index('idx_subscription_status', 'subscriptions', ['status'])

    # Create revenue_ledger table; idempotency_key is the Stripe invoice id for payments
    op.create_table(
        'revenue_ledger',
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('idempotency_key', sa.String(255), nullable=False),
        sa.Column('entry_type', sa.String(20), nullable=False),
        sa.Column('subscription_id', sa.String(36), nullable=False),
        sa.Column('creator_id', sa.String(36), nullable=False),
        sa.Column('stripe_invoice_id', sa.String(255), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('gross_amount', sa.BigInteger(), nullable=False),
        sa.Column('processor_fee', sa.BigInteger(), nullable=False),
        sa.Column('platform_commission', sa.BigInteger(), nullable=False),
        sa.Column('creator_earning', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('uuid'),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.uuid']),
        sa.ForeignKeyConstraint(['creator_id'], ['users.uuid']),
        sa.UniqueConstraint('idempotency_key'),
    )
    op.create_index('idx_revenue_ledger_creator_id', 'revenue_ledger', ['creator_id'])
    op.create_index('idx_revenue_ledger_invoice_id', 'revenue_ledger', ['stripe_invoice_id'])

    # Create failed_transfers table
    op.create_table(
        'failed_transfers',
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('creator_id', sa.String(36), nullable=False),
        sa.Column('subscription_id', sa.String(36), nullable=False),
        sa.Column('stripe_invoice_id', sa.String(255), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('destination_account_id', sa.String(255), nullable=False),
        sa.Column('transfer_group', sa.String(255), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=False),
        sa.Column('error_type', sa.String(100), nullable=True),
        sa.Column('error_code', sa.String(100), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_retry_at', sa.DateTime(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('stripe_transfer_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('uuid'),
        sa.ForeignKeyConstraint(['creator_id'], ['users.uuid']),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.uuid']),
    )
    op.create_index('idx_failed_transfer_creator_id', 'failed_transfers', ['creator_id'])
    op.create_index('idx_failed_transfer_resolved_at', 'failed_transfers', ['resolved_at'])


def downgrade() -> None:
    op.drop_index('idx_failed_transfer_resolved_at', table_name='failed_transfers')
    op.drop_index('idx_failed_transfer_creator_id', table_name='failed_transfers')
    op.drop_table('failed_transfers')
    op.drop_index('idx_revenue_ledger_invoice_id', table_name='revenue_ledger')
    op.drop_index('idx_revenue_ledger_creator_id', table_name='revenue_ledger')
    op.drop_table('revenue_ledger')
    op.drop_index('idx_subscription_status', table_name='subscriptions')
    op.drop_index('idx_subscription_creator_id', table_name='subscriptions')
    op.drop_index('idx_subscription_subscriber_id', table_name='subscriptions')
    op.drop_table('subscriptions')
    op.drop_table('creator_profiles')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
