"""Creator payouts over Stripe Connect transfers.

A payment being recognized and a payout being delivered are separate
steps. By the time a transfer is attempted the revenue is already on the
ledger; a rejected or timed-out transfer only produces a ``FailedTransfer``
row for the retry job or an operator to pick up.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.creator_profile import CreatorProfile
from app.models.failed_transfer import FailedTransfer
from app.models.subscription import Subscription
from app.services.stripe_client import stripe_error_details

logger = logging.getLogger(__name__)


class TransferOutcome(str, Enum):
    TRANSFERRED = "transferred"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RetrySummary:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0


def transfer_idempotency_key(invoice_id: str, attempt: int = 0) -> str:
    """Stripe idempotency key for the transfer paying out ``invoice_id``."""
    if attempt:
        return f"transfer-{invoice_id}-retry-{attempt}"
    return f"transfer-{invoice_id}"


async def initiate_creator_transfer(
    db: AsyncSession,
    creator_profile: CreatorProfile,
    subscription: Subscription,
    invoice_id: str,
    amount: int,
    currency: str,
) -> TransferOutcome:
    """
    Transfer a creator's earning to their connected account, if they have one.

    - Skips (no Stripe call) when the account is missing or payouts are
      disabled; the earning stays accrued and is visible on the ledger.
    - On any Stripe error, records a FailedTransfer with retry_count 0.
    """
    if not creator_profile.can_receive_transfers:
        logger.info(
            f"Skipping transfer - payout account not ready: creator={subscription.creator_id} "
            f"invoice={invoice_id} amount={amount} "
            f"has_account={bool(creator_profile.stripe_account_id)} "
            f"payouts_enabled={creator_profile.payouts_enabled}"
        )
        return TransferOutcome.SKIPPED

    if amount <= 0:
        logger.info(f"Skipping transfer - nothing to pay out for invoice {invoice_id}")
        return TransferOutcome.SKIPPED

    try:
        transfer = stripe.Transfer.create(
            amount=amount,
            currency=currency,
            destination=creator_profile.stripe_account_id,
            transfer_group=subscription.stripe_subscription_id,
            description=f"Subscription payment for invoice {invoice_id}",
            metadata={
                "creator_id": subscription.creator_id,
                "invoice_id": invoice_id,
                "subscription_id": subscription.stripe_subscription_id,
            },
            idempotency_key=transfer_idempotency_key(invoice_id),
        )
    except stripe.StripeError as e:
        details = stripe_error_details(e)
        logger.error(
            f"Transfer failed: creator={subscription.creator_id} invoice={invoice_id} "
            f"amount={amount} error={details['message']}"
        )
        db.add(FailedTransfer(
            creator_id=subscription.creator_id,
            subscription_id=subscription.uuid,
            stripe_invoice_id=invoice_id,
            amount=amount,
            currency=currency,
            destination_account_id=creator_profile.stripe_account_id,
            transfer_group=subscription.stripe_subscription_id,
            error_message=details["message"],
            error_type=details["type"],
            error_code=details["code"],
            retry_count=0,
        ))
        await db.commit()
        return TransferOutcome.FAILED

    logger.info(f"Transfer created: transfer={transfer.id} creator={subscription.creator_id} amount={amount}")
    return TransferOutcome.TRANSFERRED


def _find_existing_transfer(failed: FailedTransfer) -> Optional[str]:
    """Return the id of a transfer Stripe already made for this invoice.

    A timed-out request may still have gone through on Stripe's side.
    """
    transfers = stripe.Transfer.list(transfer_group=failed.transfer_group, limit=100)
    for transfer in transfers.data:
        metadata = transfer.metadata or {}
        if metadata.get("invoice_id") == failed.stripe_invoice_id:
            return transfer.id
    return None


async def retry_failed_transfers(db: AsyncSession) -> RetrySummary:
    """
    Retry unresolved failed transfers, oldest first.

    Rows whose creator still cannot receive transfers are left untouched.
    Each row is committed on its own so one bad row does not hold back
    the rest of the batch.
    """
    result = await db.execute(
        select(FailedTransfer, CreatorProfile)
        .join(CreatorProfile, CreatorProfile.user_id == FailedTransfer.creator_id)
        .where(
            FailedTransfer.resolved_at.is_(None),
            FailedTransfer.retry_count < settings.TRANSFER_RETRY_MAX_ATTEMPTS,
        )
        .order_by(FailedTransfer.created_at)
        .limit(settings.TRANSFER_RETRY_BATCH_SIZE)
    )
    rows = result.all()
    summary = RetrySummary(processed=len(rows))

    if not rows:
        logger.info("No failed transfers to retry")
        return summary

    logger.info(f"Found {len(rows)} failed transfers to retry")

    for failed, creator_profile in rows:
        if not creator_profile.can_receive_transfers:
            logger.info(f"Skipping retry of {failed.uuid} - payouts not enabled for creator {failed.creator_id}")
            summary.skipped += 1
            continue

        attempt = failed.retry_count + 1
        try:
            transfer_id = _find_existing_transfer(failed)
            if transfer_id is None:
                transfer = stripe.Transfer.create(
                    amount=failed.amount,
                    currency=failed.currency,
                    destination=creator_profile.stripe_account_id,
                    transfer_group=failed.transfer_group,
                    description=f"Retry of failed transfer for invoice {failed.stripe_invoice_id}",
                    metadata={
                        "creator_id": failed.creator_id,
                        "invoice_id": failed.stripe_invoice_id,
                        "subscription_id": failed.transfer_group,
                        "failed_transfer_id": failed.uuid,
                    },
                    idempotency_key=transfer_idempotency_key(failed.stripe_invoice_id, attempt),
                )
                transfer_id = transfer.id
        except stripe.StripeError as e:
            details = stripe_error_details(e)
            logger.warning(f"Transfer retry {attempt} failed for {failed.uuid}: {details['message']}")
            failed.retry_count = attempt
            failed.last_retry_at = datetime.utcnow()
            failed.error_message = details["message"]
            failed.error_type = details["type"]
            failed.error_code = details["code"]
            summary.failed += 1
        else:
            logger.info(f"Transfer retry succeeded for {failed.uuid}: transfer={transfer_id}")
            failed.resolved_at = datetime.utcnow()
            failed.stripe_transfer_id = transfer_id
            summary.successful += 1
        await db.commit()

    logger.info(
        f"Retry process completed: successful={summary.successful} failed={summary.failed} skipped={summary.skipped}"
    )
    return summary
