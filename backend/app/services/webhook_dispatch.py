"""Routing of verified Stripe events to their handlers.

Every ``EventKind`` must have an entry in ``EVENT_HANDLERS``; the module
refuses to import otherwise. Event types Stripe sends that are not an
``EventKind`` are acknowledged and ignored.
"""
import logging
from typing import Any, Awaitable, Callable, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.webhooks import (
    EventKind, StripeEvent, CheckoutSessionPayload, SubscriptionPayload,
    InvoicePayload, PaidInvoicePayload, AccountPayload, ChargePayload,
)
from app.services.errors import WebhookPayloadError
from app.services.payout_accounts import sync_payout_account
from app.services.revenue import record_invoice_payment, record_charge_refund
from app.services.subscription_lifecycle import (
    create_subscription_from_checkout, update_subscription_status,
    mark_subscription_past_due, cancel_subscription,
)

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


class HandlingState:
    """Tracks whether a handler has durably committed its effects.

    Failures after the commit must not make Stripe redeliver, so the
    dispatcher acknowledges them instead of propagating.
    """

    def __init__(self):
        self.committed = False

    def mark_committed(self) -> None:
        self.committed = True


Handler = Callable[[AsyncSession, dict[str, Any], HandlingState], Awaitable[str]]


def parse_payload(model: Type[PayloadT], obj: dict[str, Any]) -> PayloadT:
    """Validate an event's ``data.object`` against the schema for its kind."""
    try:
        return model.model_validate(obj)
    except ValidationError as e:
        raise WebhookPayloadError(f"Invalid {model.__name__}: {e.error_count()} validation errors") from e


async def _on_checkout_completed(db, obj, state):
    return await create_subscription_from_checkout(db, parse_payload(CheckoutSessionPayload, obj), state)


async def _on_subscription_changed(db, obj, state):
    return await update_subscription_status(db, parse_payload(SubscriptionPayload, obj), state)


async def _on_subscription_cancelled(db, obj, state):
    return await cancel_subscription(db, parse_payload(SubscriptionPayload, obj).id, state)


async def _on_invoice_paid(db, obj, state):
    return await record_invoice_payment(db, parse_payload(PaidInvoicePayload, obj), state)


async def _on_invoice_failed(db, obj, state):
    return await mark_subscription_past_due(db, parse_payload(InvoicePayload, obj), state)


async def _on_account_updated(db, obj, state):
    return await sync_payout_account(db, parse_payload(AccountPayload, obj), state)


async def _on_charge_refunded(db, obj, state):
    return await record_charge_refund(db, parse_payload(ChargePayload, obj), state)


EVENT_HANDLERS: dict[EventKind, Handler] = {
    EventKind.CHECKOUT_COMPLETED: _on_checkout_completed,
    EventKind.SUBSCRIPTION_RENEWED: _on_subscription_changed,
    EventKind.SUBSCRIPTION_UPDATED: _on_subscription_changed,
    EventKind.SUBSCRIPTION_CANCELLED: _on_subscription_cancelled,
    EventKind.INVOICE_PAYMENT_SUCCEEDED: _on_invoice_paid,
    EventKind.INVOICE_PAYMENT_FAILED: _on_invoice_failed,
    EventKind.PAYOUT_ACCOUNT_UPDATED: _on_account_updated,
    EventKind.CHARGE_REFUNDED: _on_charge_refunded,
}

_unhandled_kinds = set(EventKind) - set(EVENT_HANDLERS)
if _unhandled_kinds:
    raise RuntimeError(f"No webhook handler registered for: {sorted(k.value for k in _unhandled_kinds)}")


async def dispatch_event(db: AsyncSession, event: StripeEvent) -> str:
    """
    Run the handler for ``event`` and return its outcome status.

    Outcomes: ``processed``, ``already_processed``, ``ignored`` and
    ``processed_with_errors`` (failed after its commit). Exceptions raised
    before a handler commits propagate so the sender retries.
    """
    kind = event.kind
    if kind is None:
        logger.info(f"Unhandled event type {event.type} ({event.id}), acknowledging")
        return "ignored"

    handler = EVENT_HANDLERS[kind]
    state = HandlingState()
    try:
        return await handler(db, event.data.object, state)
    except Exception:
        await db.rollback()
        if state.committed:
            logger.exception(f"Event {event.id} ({event.type}) failed after its changes were committed; acknowledging")
            return "processed_with_errors"
        raise
