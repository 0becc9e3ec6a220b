"""Payment service - append-only ledger of successful Stripe payments"""
import logging
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.metrics import payments_recorded_counter
from app.db.helpers import insert_or_skip
from app.models.nomination import Nomination, Ticket
from app.models.payment import Payment, PAYMENT_TYPES
from app.schemas.stripe_events import CheckoutSessionPayload, PaymentIntentPayload
from app.services.stripe_service import build_ticket_qr_code

logger = logging.getLogger(__name__)


def _payment_type(raw_type: str) -> str:
    return raw_type if raw_type in PAYMENT_TYPES else "unknown"


def record_checkout_payment(session: CheckoutSessionPayload, db: Session) -> bool:
    """Record a completed checkout, keyed by checkout-session id.

    A single INSERT ... ON CONFLICT DO NOTHING: redelivering the same
    session is absorbed by the unique key. Does not commit.

    Returns:
        True if a new ledger row was written
    """
    inserted = insert_or_skip(
        db,
        Payment,
        {
            "user_id": session.metadata.user_id,
            "type": _payment_type(session.metadata.type),
            "amount": session.amount_total,
            "currency": session.currency.upper(),
            "status": "succeeded",
            "stripe_session_id": session.id,
            "payment_metadata": session.raw_metadata,
        },
        conflict_column="stripe_session_id",
    )
    payments_recorded_counter.labels(source="checkout", outcome="inserted" if inserted else "duplicate").inc()
    if not inserted:
        logger.info(f"Payment for checkout session {session.id} already recorded")
    return inserted


def record_payment_intent(intent: PaymentIntentPayload, db: Session) -> bool:
    """Record a succeeded payment intent, keyed by payment-intent id.

    Intents without a user_id in their metadata are not ours to attribute and
    are skipped. Does not commit.

    Returns:
        True if a new ledger row was written
    """
    if intent.metadata.user_id is None:
        logger.info(f"Payment intent {intent.id} has no user_id metadata, not recording")
        payments_recorded_counter.labels(source="payment_intent", outcome="skipped").inc()
        return False

    inserted = insert_or_skip(
        db,
        Payment,
        {
            "user_id": intent.metadata.user_id,
            "type": _payment_type(intent.metadata.type),
            "amount": intent.amount,
            "currency": intent.currency.upper(),
            "status": "succeeded",
            "stripe_payment_intent_id": intent.id,
            "payment_metadata": intent.raw_metadata,
        },
        conflict_column="stripe_payment_intent_id",
    )
    payments_recorded_counter.labels(source="payment_intent", outcome="inserted" if inserted else "duplicate").inc()
    logger.info(f"Payment succeeded: {intent.id} (recorded={inserted})")
    return inserted


def mark_nomination_paid(session: CheckoutSessionPayload, db: Session) -> None:
    nomination_id = session.metadata.nomination_id
    if nomination_id is None:
        raise ValueError(f"Checkout session {session.id} is a nomination payment without nomination_id")
    db.execute(
        update(Nomination)
        .where(Nomination.id == nomination_id)
        .values(payment_status="paid", stripe_session_id=session.id)
        .execution_options(synchronize_session=False)
    )
    logger.info(f"Nomination payment completed: {nomination_id}")


def mark_ticket_paid(session: CheckoutSessionPayload, db: Session) -> None:
    ticket_id = session.metadata.ticket_id
    if ticket_id is None:
        raise ValueError(f"Checkout session {session.id} is a ticket payment without ticket_id")
    db.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id)
        .values(
            payment_status="paid",
            stripe_session_id=session.id,
            qr_code=build_ticket_qr_code(ticket_id, session.metadata.award_name),
        )
        .execution_options(synchronize_session=False)
    )
    logger.info(f"Ticket purchase completed: {ticket_id}")
