"""Referral commissions on creator earnings.

A creator who joined through another creator's referral code shares a
percentage of their earnings with the referrer while the referral is
active. Commissions accrue per payment ledger entry; once a referral's
unpaid total reaches ``REFERRAL_PAYOUT_THRESHOLD_CENTS`` the referrer's
unpaid commissions are gathered into a pending payout.

Nothing here commits: it runs inside the invoice payment transaction so a
commission exists exactly when its ledger entry does.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.creator_referral import (
    CreatorReferral, CreatorReferralCommission, CreatorReferralPayout, REFERRAL_STATUS_ACTIVE,
)
from app.services.idempotency import insert_or_ignore
from app.services.money import round_half_up

logger = logging.getLogger(__name__)


async def get_active_referral(db: AsyncSession, creator_id: str) -> Optional[CreatorReferral]:
    """The referral currently earning commission on ``creator_id``, if any."""
    result = await db.execute(
        select(CreatorReferral)
        .where(
            CreatorReferral.referred_creator_id == creator_id,
            CreatorReferral.status == REFERRAL_STATUS_ACTIVE,
            CreatorReferral.expires_at > datetime.utcnow(),
        )
        .order_by(CreatorReferral.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _unpaid_commission(db: AsyncSession, referral_id: str, currency: str) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(CreatorReferralCommission.commission_amount), 0)).where(
            CreatorReferralCommission.creator_referral_id == referral_id,
            CreatorReferralCommission.included_in_payout_id.is_(None),
            CreatorReferralCommission.currency == currency,
        )
    )
    return int(result.scalar_one())


async def create_referral_payout(db: AsyncSession, referrer_id: str, currency: str) -> str:
    """
    Gather every unpaid commission owed to ``referrer_id`` into one payout.

    Commissions are claimed with a conditional UPDATE, so one claimed by a
    concurrent payout is never counted twice. Returns the payout id.
    """
    payout_id = str(uuid4())
    payout = CreatorReferralPayout(uuid=payout_id, referrer_id=referrer_id, amount=0, currency=currency)
    db.add(payout)
    await db.flush()

    referral_ids = select(CreatorReferral.uuid).where(CreatorReferral.referrer_id == referrer_id)
    await db.execute(
        update(CreatorReferralCommission)
        .where(
            CreatorReferralCommission.creator_referral_id.in_(referral_ids),
            CreatorReferralCommission.included_in_payout_id.is_(None),
            CreatorReferralCommission.currency == currency,
        )
        .values(included_in_payout_id=payout_id)
        .execution_options(synchronize_session=False)
    )

    result = await db.execute(
        select(func.coalesce(func.sum(CreatorReferralCommission.commission_amount), 0)).where(
            CreatorReferralCommission.included_in_payout_id == payout_id
        )
    )
    amount = int(result.scalar_one())
    payout.amount = amount
    await db.flush()
    logger.info(f"Referral payout created: payout={payout_id} referrer={referrer_id} amount={amount} {currency}")
    return payout_id


async def record_referral_commission(
    db: AsyncSession,
    ledger_entry_id: str,
    creator_id: str,
    subscription_id: str,
    invoice_id: str,
    creator_earning: int,
    currency: str,
) -> Optional[str]:
    """
    Accrue the referrer's commission on one payment ledger entry.

    Returns the commission id, or None when the creator has no active
    referral, the commission rounds to zero, or the entry already has one.
    """
    referral = await get_active_referral(db, creator_id)
    if referral is None:
        return None

    percentage = Decimal(str(referral.commission_percentage))
    commission = round_half_up(Decimal(creator_earning) * percentage / Decimal(100))
    if commission <= 0:
        logger.info(f"Referral commission for invoice {invoice_id} rounds to zero, skipping")
        return None

    commission_id = await insert_or_ignore(
        db,
        CreatorReferralCommission,
        {
            "creator_referral_id": referral.uuid,
            "ledger_entry_id": ledger_entry_id,
            "stripe_invoice_id": invoice_id,
            "subscription_id": subscription_id,
            "creator_earnings_amount": creator_earning,
            "commission_amount": commission,
            "currency": currency,
        },
        conflict_column="ledger_entry_id",
    )
    if commission_id is None:
        logger.info(f"Referral commission for ledger entry {ledger_entry_id} already recorded")
        return None

    await db.execute(
        update(CreatorReferral)
        .where(CreatorReferral.uuid == referral.uuid)
        .values(
            total_earnings_tracked=CreatorReferral.total_earnings_tracked + creator_earning,
            total_commission_earned=CreatorReferral.total_commission_earned + commission,
            last_commission_date=datetime.utcnow(),
        )
    )

    unpaid = await _unpaid_commission(db, referral.uuid, currency)
    logger.info(
        f"Referral commission recorded: referral={referral.uuid} invoice={invoice_id} "
        f"commission={commission} unpaid={unpaid}"
    )
    if unpaid >= settings.REFERRAL_PAYOUT_THRESHOLD_CENTS:
        await create_referral_payout(db, referral.referrer_id, currency)
    return commission_id
