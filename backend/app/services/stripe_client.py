"""Stripe SDK configuration shared by the webhook and payout code."""
import logging

import stripe

from app.config import settings

logger = logging.getLogger(__name__)


def configure_stripe() -> None:
    """Set the API key, network timeout and retry policy on the stripe module.

    Transfer and retrieve calls are synchronous network requests; the
    timeout keeps a slow Stripe response from holding a webhook open.
    """
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)

    if not settings.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY is not set; outbound Stripe calls will fail")


def stripe_error_details(error: Exception) -> dict:
    """Pull the fields worth persisting out of a Stripe exception."""
    if isinstance(error, stripe.StripeError):
        return {
            "message": error.user_message or str(error) or type(error).__name__,
            "type": type(error).__name__,
            "code": error.code,
        }
    return {"message": str(error) or type(error).__name__, "type": type(error).__name__, "code": None}
