"""Revenue split and ledger postings for captured subscription payments.

Split formula
-------------
Stripe reports the invoice ``total`` (gross, billed to the subscriber) and
``amount_paid`` (what actually settled after Stripe's own deduction).

1. ``net_of_fee = amount_paid``, taken as reported and never re-derived from
   fee rates.
2. ``processor_fee = total - amount_paid``.
3. ``platform_commission = round_half_up(net_of_fee * PLATFORM_COMMISSION_RATE)``,
   rounded once.
4. ``creator_earning = net_of_fee - platform_commission``.

Everything is integer minor units, so ``fee + commission + earning == gross``
holds exactly. The commission is taken from the post-fee amount, which is
how the platform has always computed it.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.creator_profile import CreatorProfile
from app.models.revenue_ledger import RevenueLedgerEntry, ENTRY_PAYMENT, ENTRY_REFUND
from app.models.subscription import Subscription
from app.schemas.webhooks import PaidInvoicePayload, ChargePayload
from app.services.earnings import add_creator_earnings
from app.services.errors import (
    WebhookPayloadError, SubscriptionNotFoundError, CreatorProfileNotFoundError,
)
from app.services.idempotency import insert_or_ignore
from app.services.money import round_half_up
from app.services.payouts import initiate_creator_transfer
from app.services.referrals import record_referral_commission

if TYPE_CHECKING:
    from app.services.webhook_dispatch import HandlingState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RevenueSplit:
    """How one captured amount divides between Stripe, platform and creator."""

    gross_amount: int
    processor_fee: int
    platform_commission: int
    creator_earning: int

    @property
    def net_of_fee(self) -> int:
        return self.gross_amount - self.processor_fee


def compute_revenue_split(
    gross_amount: int,
    amount_paid: int,
    commission_rate: Union[Decimal, str, float],
) -> RevenueSplit:
    """
    Split a captured invoice.

    Args:
        gross_amount: Invoice total in minor units.
        amount_paid: Amount settled after Stripe's deduction, in minor units.
        commission_rate: Platform share of the post-fee amount, 0..1.

    Raises:
        ValueError: on negative amounts, ``amount_paid > gross_amount`` or a
            rate outside 0..1.
    """
    rate = Decimal(str(commission_rate))
    if not Decimal(0) <= rate <= Decimal(1):
        raise ValueError(f"commission rate {rate} outside 0..1")
    if gross_amount < 0 or amount_paid < 0:
        raise ValueError("amounts must be non-negative")
    if amount_paid > gross_amount:
        raise ValueError(f"amount_paid {amount_paid} exceeds gross {gross_amount}")

    net_of_fee = amount_paid
    commission = round_half_up(Decimal(net_of_fee) * rate)
    return RevenueSplit(
        gross_amount=gross_amount,
        processor_fee=gross_amount - amount_paid,
        platform_commission=commission,
        creator_earning=net_of_fee - commission,
    )


def prorate_refund(entry: RevenueLedgerEntry, refund_amount: int) -> RevenueSplit:
    """
    Share a refund out over an original payment's components.

    Fee and commission are prorated with half-up rounding; the creator
    share takes the remainder so the parts still sum to ``refund_amount``.
    When both roundings go up far enough to push that remainder below
    zero, the overshoot comes back off the commission, then the fee, so
    every part stays non-negative. Returned amounts are positive; callers
    negate them for the ledger.
    """
    if entry.gross_amount <= 0:
        return RevenueSplit(refund_amount, 0, 0, refund_amount)
    proportion = Decimal(refund_amount) / Decimal(entry.gross_amount)
    fee = round_half_up(Decimal(entry.processor_fee) * proportion)
    commission = round_half_up(Decimal(entry.platform_commission) * proportion)

    overshoot = fee + commission - refund_amount
    if overshoot > 0:
        taken = min(overshoot, commission)
        commission -= taken
        fee -= overshoot - taken

    return RevenueSplit(
        gross_amount=refund_amount,
        processor_fee=fee,
        platform_commission=commission,
        creator_earning=refund_amount - fee - commission,
    )


async def record_invoice_payment(
    db: AsyncSession,
    invoice: PaidInvoicePayload,
    state: "HandlingState",
) -> str:
    """
    Post a captured invoice to the ledger and pay the creator their share.

    The ledger insert keyed by invoice id is the idempotency boundary: a
    replayed invoice finds the row already there and nothing downstream
    runs again. The ledger row commits together with the earnings it
    implies (lifetime total, referral commission); the transfer is
    attempted only after that commit.
    """
    stripe_subscription_id = invoice.subscription_id
    if not stripe_subscription_id:
        logger.info(f"Invoice {invoice.id} has no subscription, ignoring")
        return "ignored"

    result = await db.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    subscription = result.scalar_one_or_none()
    if subscription is None:
        raise SubscriptionNotFoundError(stripe_subscription_id)

    try:
        split = compute_revenue_split(invoice.total, invoice.amount_paid, settings.PLATFORM_COMMISSION_RATE)
    except ValueError as e:
        raise WebhookPayloadError(f"Invoice {invoice.id}: {e}") from e

    result = await db.execute(
        select(CreatorProfile).where(CreatorProfile.user_id == subscription.creator_id)
    )
    creator_profile = result.scalar_one_or_none()
    if creator_profile is None:
        raise CreatorProfileNotFoundError(subscription.creator_id)

    entry_id = await insert_or_ignore(
        db,
        RevenueLedgerEntry,
        {
            "idempotency_key": invoice.id,
            "entry_type": ENTRY_PAYMENT,
            "subscription_id": subscription.uuid,
            "creator_id": subscription.creator_id,
            "stripe_invoice_id": invoice.id,
            "currency": invoice.currency.lower(),
            "gross_amount": split.gross_amount,
            "processor_fee": split.processor_fee,
            "platform_commission": split.platform_commission,
            "creator_earning": split.creator_earning,
        },
        conflict_column="idempotency_key",
    )
    if entry_id is None:
        await db.rollback()
        logger.info(f"Invoice {invoice.id} already posted to the ledger, skipping")
        return "already_processed"

    await add_creator_earnings(db, subscription.creator_id, split.creator_earning)
    await record_referral_commission(
        db,
        ledger_entry_id=entry_id,
        creator_id=subscription.creator_id,
        subscription_id=subscription.uuid,
        invoice_id=invoice.id,
        creator_earning=split.creator_earning,
        currency=invoice.currency.lower(),
    )
    await db.commit()
    state.mark_committed()

    logger.info(
        f"Revenue split recorded: invoice={invoice.id} gross={split.gross_amount} "
        f"fee={split.processor_fee} commission={split.platform_commission} "
        f"creator={split.creator_earning} ledger_entry={entry_id}"
    )

    await initiate_creator_transfer(
        db,
        creator_profile=creator_profile,
        subscription=subscription,
        invoice_id=invoice.id,
        amount=split.creator_earning,
        currency=invoice.currency.lower(),
    )
    return "processed"


async def record_charge_refund(
    db: AsyncSession,
    charge: ChargePayload,
    state: "HandlingState",
) -> str:
    """
    Post the newly refunded part of a charge as a negative ledger entry.

    ``amount_refunded`` is cumulative on the charge, so the new refund is
    whatever exceeds the refunds already posted for the invoice. Lifetime
    earnings are left alone.
    """
    if not charge.invoice:
        logger.info(f"Refunded charge {charge.id} has no invoice, ignoring")
        return "ignored"

    result = await db.execute(
        select(RevenueLedgerEntry).where(RevenueLedgerEntry.idempotency_key == charge.invoice)
    )
    payment_entry = result.scalar_one_or_none()
    if payment_entry is None:
        logger.warning(f"Refund for invoice {charge.invoice} with no ledger payment, ignoring")
        return "ignored"

    result = await db.execute(
        select(func.coalesce(func.sum(RevenueLedgerEntry.gross_amount), 0)).where(
            RevenueLedgerEntry.stripe_invoice_id == charge.invoice,
            RevenueLedgerEntry.entry_type == ENTRY_REFUND,
        )
    )
    already_refunded = -int(result.scalar_one())
    refund_amount = min(charge.amount_refunded, payment_entry.gross_amount) - already_refunded
    if refund_amount <= 0:
        logger.info(f"Refund on charge {charge.id} already posted, skipping")
        return "already_processed"

    split = prorate_refund(payment_entry, refund_amount)
    entry_id = await insert_or_ignore(
        db,
        RevenueLedgerEntry,
        {
            "idempotency_key": f"refund:{charge.id}:{charge.amount_refunded}",
            "entry_type": ENTRY_REFUND,
            "subscription_id": payment_entry.subscription_id,
            "creator_id": payment_entry.creator_id,
            "stripe_invoice_id": charge.invoice,
            "currency": charge.currency.lower(),
            "gross_amount": -split.gross_amount,
            "processor_fee": -split.processor_fee,
            "platform_commission": -split.platform_commission,
            "creator_earning": -split.creator_earning,
        },
        conflict_column="idempotency_key",
    )
    if entry_id is None:
        await db.rollback()
        return "already_processed"

    await db.commit()
    state.mark_committed()
    logger.info(
        f"Refund recorded: invoice={charge.invoice} charge={charge.id} amount={split.gross_amount} "
        f"creator_share={split.creator_earning}"
    )
    return "processed"
