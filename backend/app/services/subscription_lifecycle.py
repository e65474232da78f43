"""Subscription state transitions driven by Stripe events.

    none -> incomplete -> active -> {past_due <-> active} -> cancelled

``cancelled`` is terminal: a cancelled row only comes back as a new row
with a new Stripe subscription id. Every transition is a conditional
UPDATE, so a duplicate or concurrent delivery finds nothing left to change
and the subscriber count moves at most once per subscription.
"""
import logging

import stripe
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.subscription import (
    Subscription, STATUS_ACTIVE, STATUS_CANCELLED, STATUS_INCOMPLETE, STATUS_PAST_DUE,
)
from app.models.user import User
from app.schemas.webhooks import CheckoutSessionPayload, InvoicePayload, SubscriptionPayload
from app.services.earnings import increment_subscriber_count, decrement_subscriber_count
from app.services.errors import (
    WebhookPayloadError, SubscriptionNotFoundError, SubscriberNotFoundError,
)
from app.services.idempotency import insert_or_ignore

logger = logging.getLogger(__name__)

# Stripe subscription status -> local status
STRIPE_STATUS_MAP = {
    "active": STATUS_ACTIVE,
    "trialing": STATUS_ACTIVE,
    "past_due": STATUS_PAST_DUE,
    "unpaid": STATUS_PAST_DUE,
    "paused": STATUS_PAST_DUE,
    "incomplete": STATUS_INCOMPLETE,
    "canceled": STATUS_CANCELLED,
    "incomplete_expired": STATUS_CANCELLED,
}


def map_stripe_status(stripe_status: str) -> str:
    """Translate a Stripe subscription status to the local vocabulary."""
    try:
        return STRIPE_STATUS_MAP[stripe_status]
    except KeyError:
        raise WebhookPayloadError(f"Unknown subscription status: {stripe_status}")


def retrieve_subscription(stripe_subscription_id: str) -> SubscriptionPayload:
    """Fetch the full subscription object from Stripe."""
    subscription = stripe.Subscription.retrieve(stripe_subscription_id)
    data = subscription.to_dict() if hasattr(subscription, "to_dict") else dict(subscription)
    return SubscriptionPayload.model_validate(data)


async def _get_subscription(db: AsyncSession, stripe_subscription_id: str) -> Subscription:
    result = await db.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    subscription = result.scalar_one_or_none()
    if subscription is None:
        raise SubscriptionNotFoundError(stripe_subscription_id)
    return subscription


async def create_subscription_from_checkout(db: AsyncSession, session: CheckoutSessionPayload, state) -> str:
    """
    Create the subscription row for a completed subscription checkout.

    - Non-subscription checkouts are ignored
    - The subscriber is resolved by the checkout's customer email
    - The creator comes from ``metadata.creator_id`` set at checkout creation
    - Only the delivery that actually inserts the row bumps the subscriber count
    """
    if session.mode != "subscription" or not session.subscription:
        logger.info(f"Checkout session {session.id} is not a subscription checkout, ignoring")
        return "ignored"

    email = session.email
    if not email:
        raise WebhookPayloadError(f"Checkout session {session.id} has no customer email")
    creator_id = session.creator_id
    if not creator_id:
        raise WebhookPayloadError(f"Checkout session {session.id} has no creator_id in metadata")

    stripe_subscription = retrieve_subscription(session.subscription)

    result = await db.execute(select(User).where(User.email == email))
    subscriber = result.scalar_one_or_none()
    if subscriber is None:
        raise SubscriberNotFoundError(email)

    subscription_id = await insert_or_ignore(
        db,
        Subscription,
        {
            "stripe_subscription_id": stripe_subscription.id,
            "subscriber_id": subscriber.uuid,
            "creator_id": creator_id,
            "status": STATUS_ACTIVE,
            "expires_at": stripe_subscription.period_end,
        },
        conflict_column="stripe_subscription_id",
    )
    if subscription_id is None:
        await db.rollback()
        logger.info(f"Subscription {stripe_subscription.id} already exists, skipping")
        return "already_processed"

    await increment_subscriber_count(db, creator_id)
    await db.commit()
    state.mark_committed()

    logger.info(
        f"Subscription created: stripe_subscription={stripe_subscription.id} "
        f"subscriber={subscriber.uuid} creator={creator_id}"
    )
    return "processed"


async def update_subscription_status(db: AsyncSession, payload: SubscriptionPayload, state) -> str:
    """
    Apply a renewal or update: copy the status and refresh the period end.

    A Stripe status that maps to ``cancelled`` is handled as a cancellation
    so the subscriber count stays right. Updates for a subscription that is
    already cancelled locally are ignored.
    """
    new_status = map_stripe_status(payload.status)
    if new_status == STATUS_CANCELLED:
        return await cancel_subscription(db, payload.id, state)

    subscription = await _get_subscription(db, payload.id)
    if subscription.status == STATUS_CANCELLED:
        logger.warning(f"Ignoring {payload.status} update for cancelled subscription {payload.id}")
        return "ignored"

    values = {"status": new_status}
    if payload.period_end is not None:
        values["expires_at"] = payload.period_end

    result = await db.execute(
        update(Subscription)
        .where(Subscription.uuid == subscription.uuid, Subscription.status != STATUS_CANCELLED)
        .values(**values)
    )
    if result.rowcount == 0:
        await db.rollback()
        logger.warning(f"Subscription {payload.id} was cancelled concurrently, update ignored")
        return "ignored"

    await db.commit()
    state.mark_committed()
    logger.info(f"Subscription updated: stripe_subscription={payload.id} status={new_status}")
    return "processed"


async def mark_subscription_past_due(db: AsyncSession, invoice: InvoicePayload, state) -> str:
    """Move an active subscription to past_due after a failed invoice payment.

    The subscriber is still counted until the subscription is cancelled.
    """
    stripe_subscription_id = invoice.subscription_id
    if not stripe_subscription_id:
        logger.info(f"Failed invoice {invoice.id} has no subscription, ignoring")
        return "ignored"

    subscription = await _get_subscription(db, stripe_subscription_id)
    result = await db.execute(
        update(Subscription)
        .where(Subscription.uuid == subscription.uuid, Subscription.status == STATUS_ACTIVE)
        .values(status=STATUS_PAST_DUE)
    )
    if result.rowcount == 0:
        await db.rollback()
        logger.info(f"Payment failed for {stripe_subscription_id} but it is not active, nothing to change")
        return "ignored"

    await db.commit()
    state.mark_committed()
    logger.info(f"Subscription past due: stripe_subscription={stripe_subscription_id} invoice={invoice.id}")
    return "processed"


async def cancel_subscription(db: AsyncSession, stripe_subscription_id: str, state) -> str:
    """
    Cancel a subscription and decrement the creator's subscriber count.

    The decrement only happens for the delivery whose UPDATE moved the row
    into ``cancelled``, so duplicates cannot decrement twice.
    """
    subscription = await _get_subscription(db, stripe_subscription_id)
    creator_id = subscription.creator_id

    result = await db.execute(
        update(Subscription)
        .where(Subscription.uuid == subscription.uuid, Subscription.status != STATUS_CANCELLED)
        .values(status=STATUS_CANCELLED)
    )
    if result.rowcount == 0:
        await db.rollback()
        logger.info(f"Subscription {stripe_subscription_id} already cancelled, skipping")
        return "already_processed"

    await decrement_subscriber_count(db, creator_id)
    await db.commit()
    state.mark_committed()
    logger.info(f"Subscription cancelled: stripe_subscription={stripe_subscription_id} creator={creator_id}")
    return "processed"
