"""Stripe webhook endpoint."""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.webhooks import WebhookAck
from app.services.errors import (
    WebhookAuthenticationError, WebhookPayloadError, ReferentialIntegrityError,
)
from app.services.stripe_client import configure_stripe
from app.services.webhook_auth import (
    WebhookVerificationConfig, authenticate_event, get_verification_config,
)
from app.services.webhook_dispatch import dispatch_event

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("app.audit.webhooks")

router = APIRouter()

# Configure Stripe
configure_stripe()


def record_webhook_audit(event_id: str, event_type: str, outcome: str) -> None:
    """Audit line written after the response has been sent."""
    audit_logger.info(f"event={event_id} type={event_type} outcome={outcome}")


@router.post("/api/webhooks/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    verification: WebhookVerificationConfig = Depends(get_verification_config),
):
    """
    Handle Stripe webhook events.

    - Verifies the signature before anything touches the database
    - Routes the event to its handler
    - 200 once the event's effects are committed (or nothing needed doing);
      any other status makes Stripe redeliver
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        event = authenticate_event(payload, sig_header, verification)
    except WebhookAuthenticationError as e:
        # The reason stays in our logs; the caller learns nothing about which check failed
        logger.warning(f"Rejected webhook request: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook request"
        )

    logger.info(f"Webhook received: {event.type} ({event.id})")

    try:
        outcome = await dispatch_event(db, event)
    except WebhookPayloadError as e:
        logger.error(f"Invalid payload for {event.type} ({event.id}): {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid event payload"
        )
    except ReferentialIntegrityError as e:
        logger.error(f"RECONCILIATION NEEDED for {event.type} ({event.id}): {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Event refers to unknown records"
        )
    except Exception:
        logger.exception(f"Failed to process {event.type} ({event.id})")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed"
        )

    background_tasks.add_task(record_webhook_audit, event.id, event.type, outcome)
    return WebhookAck(status=outcome)
