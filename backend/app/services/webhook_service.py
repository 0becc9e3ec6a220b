"""Webhook service - Stripe event receipt log and dispatch"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.logging import webhook_logger
from app.core.metrics import webhook_events_counter
from app.db.helpers import insert_or_skip
from app.db.session import transaction
from app.models.stripe_event import StripeEvent
from app.schemas.stripe_events import StripeEventType, StripeWebhookEvent
from app.services.stripe_service import verify_stripe_event
from app.services.subscription_service import (
    handle_checkout_completed, handle_invoice_paid, handle_invoice_payment_failed,
    handle_payment_intent_succeeded, handle_subscription_deleted, handle_subscription_updated
)

logger = webhook_logger

EVENT_HANDLERS: Dict[StripeEventType, Callable[[StripeWebhookEvent, Session], None]] = {
    StripeEventType.CHECKOUT_SESSION_COMPLETED: handle_checkout_completed,
    StripeEventType.INVOICE_PAID: handle_invoice_paid,
    StripeEventType.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    StripeEventType.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    StripeEventType.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
    StripeEventType.PAYMENT_INTENT_SUCCEEDED: handle_payment_intent_succeeded,
}


# ============================================================================
# EVENT LOGGING
# ============================================================================

def log_stripe_event(event: StripeWebhookEvent, db: Session) -> bool:
    """Record receipt of a verified event. Redeliveries keep the first row.

    Returns:
        True if this is the first delivery seen
    """
    with transaction(db):
        first_delivery = insert_or_skip(
            db,
            StripeEvent,
            {
                "event_id": event.id,
                "event_type": event.type,
                "payload": event.model_dump(),
                "processed": False,
                "created_at": datetime.now(timezone.utc),
            },
            conflict_column="event_id",
        )
    if not first_delivery:
        logger.info(f"Webhook event {event.id} redelivered")
    return first_delivery


def mark_stripe_event_processed(event_id: str, db: Session, error_message: Optional[str] = None):
    with transaction(db):
        db.execute(
            update(StripeEvent)
            .where(StripeEvent.event_id == event_id)
            .values(
                processed=error_message is None,
                processed_at=datetime.now(timezone.utc),
                error_message=error_message,
            )
            .execution_options(synchronize_session=False)
        )


# ============================================================================
# WEBHOOK PROCESSING
# ============================================================================

def dispatch_event(event: StripeWebhookEvent, db: Session) -> bool:
    """Run the handler for this event type in one transaction.

    Returns:
        False if the event type is not one we handle
    """
    event_type = StripeEventType.parse(event.type)
    if event_type is None:
        logger.info(f"Unhandled event type: {event.type}")
        return False

    with transaction(db):
        EVENT_HANDLERS[event_type](event, db)
    return True


def process_stripe_webhook(
    payload: bytes,
    sig_header: Optional[str],
    db: Session
) -> Tuple[int, Dict[str, Any]]:
    """Verify, log and dispatch a Stripe webhook delivery.

    Handlers are idempotent on their own keys, so every delivery is processed,
    including redeliveries of an event already seen. A handler failure is
    reported as 500 so Stripe retries the delivery later.

    Args:
        payload: Raw request body as bytes (must not be parsed by middleware)
        sig_header: Stripe signature header
        db: Database session

    Returns:
        (HTTP status code, response body)

    Raises:
        WebhookVerificationError: signature or payload could not be verified
    """
    event = verify_stripe_event(payload, sig_header)
    log_stripe_event(event, db)

    try:
        handled = dispatch_event(event, db)
    except Exception as e:
        logger.error(f"Webhook handler error for {event.id} ({event.type}): {e}", exc_info=True)
        webhook_events_counter.labels(event_type=event.type, outcome="error").inc()
        mark_stripe_event_processed(event.id, db, error_message=str(e))
        return 500, {"error": "Webhook handler failed"}

    mark_stripe_event_processed(event.id, db)
    webhook_events_counter.labels(
        event_type=event.type if handled else "unhandled",
        outcome="processed" if handled else "ignored",
    ).inc()
    if handled:
        logger.info(f"Successfully processed webhook event {event.id} of type {event.type}")
    return 200, {"received": True}
