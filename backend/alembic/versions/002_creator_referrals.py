"""creator referrals

Revision ID: 002
Revises: 001
Create Date: 2026-10-17 15:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'creator_referrals',
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('referrer_id', sa.String(36), nullable=False),
        sa.Column('referred_creator_id', sa.String(36), nullable=False),
        sa.Column('referral_code', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('commission_percentage', sa.Numeric(5, 2), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('total_earnings_tracked', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_commission_earned', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_commission_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('uuid'),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.uuid']),
        sa.ForeignKeyConstraint(['referred_creator_id'], ['users.uuid']),
        sa.UniqueConstraint('referral_code'),
    )
    op.create_index('idx_creator_referral_referred_creator_id', 'creator_referrals', ['referred_creator_id'])
    op.create_index('idx_creator_referral_referrer_id', 'creator_referrals', ['referrer_id'])

    op.create_table(
        'creator_referral_payouts',
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('referrer_id', sa.String(36), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('stripe_transfer_id', sa.String(255), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('uuid'),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.uuid']),
    )

    # One commission per payment ledger entry
    op.create_table(
        'creator_referral_commissions',
        sa.Column('uuid', sa.String(36), nullable=False),
        sa.Column('creator_referral_id', sa.String(36), nullable=False),
        sa.Column('ledger_entry_id', sa.String(36), nullable=False),
        sa.Column('stripe_invoice_id', sa.String(255), nullable=False),
        sa.Column('subscription_id', sa.String(36), nullable=False),
        sa.Column('creator_earnings_amount', sa.BigInteger(), nullable=False),
        sa.Column('commission_amount', sa.BigInteger(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('included_in_payout_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('uuid'),
        sa.ForeignKeyConstraint(['creator_referral_id'], ['creator_referrals.uuid']),
        sa.ForeignKeyConstraint(['ledger_entry_id'], ['revenue_ledger.uuid']),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.uuid']),
        sa.ForeignKeyConstraint(['included_in_payout_id'], ['creator_referral_payouts.uuid']),
        sa.UniqueConstraint('ledger_entry_id'),
    )
    op.create_index('idx_referral_commission_referral_id', 'creator_referral_commissions', ['creator_referral_id'])


def downgrade() -> None:
    op.drop_index('idx_referral_commission_referral_id', table_name='creator_referral_commissions')
    op.drop_table('creator_referral_commissions')
    op.drop_table('creator_referral_payouts')
    op.drop_index('idx_creator_referral_referrer_id', table_name='creator_referrals')
    op.drop_index('idx_creator_referral_referred_creator_id', table_name='creator_referrals')
    op.drop_table('creator_referrals')
