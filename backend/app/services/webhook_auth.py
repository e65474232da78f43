"""Verification of inbound Stripe webhook requests.

Stripe signs ``"{timestamp}.{raw body}"`` with HMAC-SHA256 using the
endpoint's signing secret and sends the result in the ``Stripe-Signature``
header. A request is accepted only when one of the ``v1`` signatures
matches and the timestamp is within the configured tolerance, which also
stops captured requests from being replayed later.
"""
import json
import logging
from dataclasses import dataclass
from functools import lru_cache

import stripe
from pydantic import ValidationError

from app.config import Settings, settings
from app.schemas.webhooks import StripeEvent
from app.services.errors import WebhookAuthenticationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookVerificationConfig:
    """Verification settings, resolved once at startup."""

    signing_secret: str
    tolerance_seconds: int = 300
    verification_disabled: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "WebhookVerificationConfig":
        """
        Build the config and refuse unsafe combinations.

        Disabling verification is a development convenience only: it raises
        in production. A missing secret is not an error here, it simply
        makes every event fail verification (fail closed).
        """
        if settings.WEBHOOK_VERIFICATION_DISABLED:
            if settings.is_production:
                raise RuntimeError(
                    "WEBHOOK_VERIFICATION_DISABLED cannot be enabled when ENVIRONMENT is production"
                )
            logger.warning(
                "!!! Stripe webhook signature verification is DISABLED "
                f"(ENVIRONMENT={settings.ENVIRONMENT}). Never run this way in production. !!!"
            )
        elif not settings.STRIPE_WEBHOOK_SECRET:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured; every webhook event will be rejected")

        return cls(
            signing_secret=settings.STRIPE_WEBHOOK_SECRET,
            tolerance_seconds=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            verification_disabled=settings.WEBHOOK_VERIFICATION_DISABLED,
        )


@lru_cache
def get_verification_config() -> WebhookVerificationConfig:
    """FastAPI dependency returning the process-wide verification config."""
    return WebhookVerificationConfig.from_settings(settings)


def authenticate_event(
    payload: bytes,
    signature: str | None,
    config: WebhookVerificationConfig,
) -> StripeEvent:
    """
    Verify a raw webhook request and decode it into a ``StripeEvent``.

    Raises WebhookAuthenticationError for a missing or invalid signature,
    a stale timestamp, a missing signing secret, or an undecodable body.
    ``verify_header`` must receive the decoded ``str`` body: stripe releases
    before 16 do not decode ``bytes`` themselves.
    """
    try:
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    except UnicodeDecodeError as e:
        raise WebhookAuthenticationError(f"Body is not valid UTF-8: {e}") from e

    if config.verification_disabled:
        logger.warning("Accepting webhook without signature verification (verification disabled)")
    else:
        if not config.signing_secret:
            raise WebhookAuthenticationError("No signing secret configured")
        if not signature:
            raise WebhookAuthenticationError("Missing Stripe-Signature header")
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, config.signing_secret, config.tolerance_seconds
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookAuthenticationError(f"Signature verification failed: {e}") from e

    try:
        return StripeEvent.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        raise WebhookAuthenticationError(f"Undecodable event body: {e}") from e
