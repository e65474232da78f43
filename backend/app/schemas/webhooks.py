"""Schemas for Stripe webhook events and the objects they carry.

Only the fields this service reads are declared; everything else Stripe
sends is ignored.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class EventKind(str, Enum):
    """Stripe event types this service acts on."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_RENEWED = "customer.subscription.resumed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_CANCELLED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    PAYOUT_ACCOUNT_UPDATED = "account.updated"
    CHARGE_REFUNDED = "charge.refunded"

    @classmethod
    def from_type(cls, event_type: str) -> Optional["EventKind"]:
        """Return the kind for a Stripe type string, or None if unrecognized."""
        try:
            return cls(event_type)
        except ValueError:
            return None


class EventData(BaseModel):
    object: dict[str, Any]


class StripeEvent(BaseModel):
    """Envelope of a verified webhook event."""

    id: str
    type: str
    created: Optional[int] = None
    livemode: bool = False
    data: EventData

    @property
    def kind(self) -> Optional[EventKind]:
        return EventKind.from_type(self.type)


class CustomerDetails(BaseModel):
    email: Optional[str] = None


class CheckoutSessionPayload(BaseModel):
    """checkout.session.completed object."""

    id: str
    mode: Optional[str] = None
    subscription: Optional[str] = None
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def email(self) -> Optional[str]:
        if self.customer_details and self.customer_details.email:
            return self.customer_details.email
        return self.customer_email

    @property
    def creator_id(self) -> Optional[str]:
        return self.metadata.get("creator_id")


class SubscriptionItem(BaseModel):
    current_period_end: Optional[int] = None


class SubscriptionItems(BaseModel):
    data: list[SubscriptionItem] = Field(default_factory=list)


class SubscriptionPayload(BaseModel):
    """customer.subscription.* object (also the result of Subscription.retrieve)."""

    id: str
    status: str
    current_period_end: Optional[int] = None
    items: Optional[SubscriptionItems] = None

    @property
    def period_end(self) -> Optional[datetime]:
        """Next billing instant as naive UTC.

        Newer API versions moved ``current_period_end`` onto the
        subscription items; both locations are accepted.
        """
        timestamp = self.current_period_end
        if timestamp is None and self.items and self.items.data:
            timestamp = self.items.data[0].current_period_end
        if timestamp is None:
            return None
        return datetime.utcfromtimestamp(timestamp)


class InvoicePayload(BaseModel):
    """invoice.* object, subscription reference only."""

    id: str
    subscription: Optional[str] = None
    parent: Optional[dict[str, Any]] = None

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        # 2025 API versions nest it under parent.subscription_details
        details = (self.parent or {}).get("subscription_details") or {}
        return details.get("subscription")


class PaidInvoicePayload(InvoicePayload):
    """invoice.payment_succeeded object with the amounts needed for the split."""

    total: int = Field(..., ge=0)
    amount_paid: int = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=3)


class AccountPayload(BaseModel):
    """account.updated object (Stripe Connect account)."""

    id: str
    payouts_enabled: bool = False
    details_submitted: bool = False


class ChargePayload(BaseModel):
    """charge.refunded object."""

    id: str
    invoice: Optional[str] = None
    amount_refunded: int = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=3)


class WebhookAck(BaseModel):
    """Acknowledgement body returned to Stripe."""

    received: bool = True
    status: str
