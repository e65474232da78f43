"""Exceptions raised while ingesting payment processor webhooks.

The webhook router maps each class to an HTTP status; anything that is
not a ``WebhookError`` is treated as an unexpected failure.
"""


class WebhookError(Exception):
    """Base class for webhook handling failures."""

    status_code = 500


class WebhookAuthenticationError(WebhookError):
    """Signature missing, invalid or stale, or the body could not be parsed.

    The message is for server logs only; clients get a generic response.
    """

    status_code = 400


class WebhookPayloadError(WebhookError):
    """A recognized event kind arrived without its required fields."""

    status_code = 422


class ReferentialIntegrityError(WebhookError):
    """The event refers to a record the local store does not have.

    Usually means the store has fallen behind Stripe. Surfaced as a 500 so
    Stripe redelivers, and logged for manual reconciliation.
    """

    status_code = 500


class SubscriptionNotFoundError(ReferentialIntegrityError):
    def __init__(self, stripe_subscription_id: str):
        self.stripe_subscription_id = stripe_subscription_id
        super().__init__(f"No local subscription for Stripe subscription {stripe_subscription_id}")


class SubscriberNotFoundError(ReferentialIntegrityError):
    def __init__(self, email: str):
        self.email = email
        super().__init__(f"No user found for email {email}")


class CreatorProfileNotFoundError(ReferentialIntegrityError):
    def __init__(self, creator_id: str):
        self.creator_id = creator_id
        super().__init__(f"No creator profile for user {creator_id}")
