"""Subscription service - supplier subscription state machine and checkout"""
import calendar
import logging
from typing import Dict, Optional, Any
from datetime import datetime, timezone
from sqlalchemy import and_, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.helpers import dialect_insert, insert_or_skip
from app.models.supplier import Supplier
from app.models.subscription import Subscription
from app.models.user import User
from app.schemas.stripe_events import (
    CheckoutSessionPayload, InvoicePayload, PaymentIntentPayload,
    StripeWebhookEvent, SubscriptionPayload
)
from app.schemas.subscriptions import CheckoutRequest
from app.services.credit_service import (
    credits_not_reset_since, credits_remaining, reset_credits, status_event_applies
)
from app.services.payment_service import (
    mark_nomination_paid, mark_ticket_paid, record_checkout_payment, record_payment_intent
)
from app.services.stripe_service import create_checkout_session

logger = logging.getLogger(__name__)

# Provider statuses folded onto the local enum {active, past_due, canceled}
PROVIDER_STATUS_MAP = {
    "active": "active",
    "trialing": "active",
    "past_due": "past_due",
    "unpaid": "past_due",
    "incomplete": "past_due",
    "canceled": "canceled",
    "incomplete_expired": "canceled",
}


def add_calendar_month(moment: datetime) -> datetime:
    """Same day-of-month next month, clamped to that month's last day (Jan 31 -> Feb 28/29)"""
    year = moment.year + moment.month // 12
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _from_unix(timestamp: Optional[int]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


# ============================================================================
# SUPPLIERS
# ============================================================================

def get_or_create_supplier(user_id: int, db: Session) -> Supplier:
    """Return the user's supplier record, creating it (KYC pending) on first use.

    Concurrent first checkouts for one user both land on the same row: the
    insert skips on the user_id unique key and the select picks up the winner.
    """
    created = insert_or_skip(
        db,
        Supplier,
        {
            "user_id": user_id,
            "kyc_status": "pending",
            "created_at": datetime.now(timezone.utc),
        },
        conflict_column="user_id",
    )
    if created:
        logger.info(f"Created supplier record for user {user_id}")
    return db.query(Supplier).filter(Supplier.user_id == user_id).one()


# ============================================================================
# STATE MACHINE
# ============================================================================

def activate_subscription(session: CheckoutSessionPayload, event_created: int, db: Session) -> bool:
    """Upsert the supplier's subscription to a fresh active period with full credits.

    Returns:
        True if the row was written, False if this or a newer event had already been applied
    """
    supplier = get_or_create_supplier(session.metadata.user_id, db)
    now = datetime.now(timezone.utc)

    values = {
        "plan_name": settings.SUBSCRIPTION_PLAN_NAME,
        "price_usd": settings.SUBSCRIPTION_PRICE_CENTS,
        "status": "active",
        "current_period_start": now,
        "current_period_end": add_calendar_month(now),
        "credits_total": settings.SUBSCRIPTION_CREDITS,
        "credits_used": 0,
        "stripe_customer_id": session.customer,
        "stripe_subscription_id": session.subscription,
        "last_event_created": event_created,
        "credits_reset_event_created": event_created,
        "updated_at": now,
    }
    stmt = dialect_insert(db, Subscription).values(
        supplier_id=supplier.id, created_at=now, **values
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["supplier_id"],
        set_=values,
        where=and_(status_event_applies(event_created), credits_not_reset_since(event_created)),
    )
    result = db.execute(stmt)
    applied = result.rowcount == 1
    if applied:
        logger.info(f"Subscription created/updated for supplier {supplier.id}")
    else:
        logger.warning(f"Ignoring stale checkout {session.id} for supplier {supplier.id}")
    return applied


def _update_by_stripe_id(stripe_subscription_id: Optional[str], event: StripeWebhookEvent,
                         values: Dict[str, Any], db: Session) -> bool:
    if not stripe_subscription_id:
        logger.warning(f"{event.type} {event.id} carries no subscription id, nothing to update")
        return False

    stmt = (
        update(Subscription)
        .where(
            Subscription.stripe_subscription_id == stripe_subscription_id,
            status_event_applies(event.created),
        )
        .values(
            last_event_created=event.created,
            updated_at=datetime.now(timezone.utc),
            **values
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        logger.warning(
            f"{event.type} {event.id}: no subscription {stripe_subscription_id} "
            f"older than this event, nothing updated"
        )
        return False
    return True


def handle_checkout_completed(event: StripeWebhookEvent, db: Session) -> None:
    session = CheckoutSessionPayload.from_object(event.data_object)
    checkout_type = session.metadata.type
    logger.info(
        f"Processing checkout completion: user_id={session.metadata.user_id} "
        f"type={checkout_type} amount_total={session.amount_total}"
    )

    if checkout_type == "subscription":
        activate_subscription(session, event.created, db)
    elif checkout_type == "nomination":
        mark_nomination_paid(session, db)
    elif checkout_type == "ticket":
        mark_ticket_paid(session, db)

    record_checkout_payment(session, db)


def handle_invoice_paid(event: StripeWebhookEvent, db: Session) -> None:
    invoice = InvoicePayload.model_validate(event.data_object)
    if not invoice.subscription:
        logger.info(f"Invoice in event {event.id} is not for a subscription, ignoring")
        return
    if reset_credits(invoice.subscription, event.created, db):
        logger.info(f"Credits reset for subscription: {invoice.subscription}")
    else:
        logger.warning(
            f"invoice.paid {event.id}: subscription {invoice.subscription} unknown "
            f"or already reset by this or a newer event"
        )


def handle_subscription_updated(event: StripeWebhookEvent, db: Session) -> None:
    subscription = SubscriptionPayload.model_validate(event.data_object)
    values = {}
    if subscription.current_period_start is not None:
        values["current_period_start"] = _from_unix(subscription.current_period_start)
    if subscription.current_period_end is not None:
        values["current_period_end"] = _from_unix(subscription.current_period_end)
    status = PROVIDER_STATUS_MAP.get(subscription.status)
    if status:
        values["status"] = status
    else:
        # e.g. 'paused': keep the local status, still sync the period
        logger.warning(f"Subscription {subscription.id} has unmapped status '{subscription.status}'")

    if _update_by_stripe_id(subscription.id, event, values, db):
        logger.info(f"Subscription updated: {subscription.id} status={status or 'unchanged'}")


def handle_subscription_deleted(event: StripeWebhookEvent, db: Session) -> None:
    subscription = SubscriptionPayload.model_validate(event.data_object)
    if _update_by_stripe_id(subscription.id, event, {"status": "canceled"}, db):
        logger.info(f"Subscription canceled: {subscription.id}")


def handle_invoice_payment_failed(event: StripeWebhookEvent, db: Session) -> None:
    invoice = InvoicePayload.model_validate(event.data_object)
    if _update_by_stripe_id(invoice.subscription, event, {"status": "past_due"}, db):
        logger.info(f"Payment failed for subscription: {invoice.subscription}")


def handle_payment_intent_succeeded(event: StripeWebhookEvent, db: Session) -> None:
    intent = PaymentIntentPayload.from_object(event.data_object)
    record_payment_intent(intent, db)


# ============================================================================
# CHECKOUT & READS
# ============================================================================

def create_checkout(user: User, request: CheckoutRequest, frontend_url: str) -> Dict[str, str]:
    """Open a Stripe checkout for a subscription, nomination or ticket

    Raises:
        ValueError: missing reference id for a one-off checkout, or Stripe not configured
    """
    metadata: Dict[str, Any] = {}
    if request.type == "nomination":
        if request.nomination_id is None:
            raise ValueError("nomination_id is required for nomination checkout")
        metadata["nomination_id"] = request.nomination_id
    elif request.type == "ticket":
        if request.ticket_id is None:
            raise ValueError("ticket_id is required for ticket checkout")
        metadata["ticket_id"] = request.ticket_id
        metadata["award_name"] = request.award_name

    return create_checkout_session(
        request.type,
        user.id,
        success_url=f"{frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{frontend_url}/payment/cancelled",
        customer_email=user.email,
        amount=request.amount,
        currency=request.currency,
        quantity=request.quantity,
        description=request.description,
        metadata=metadata,
    )


def get_supplier_subscription_summary(user_id: int, db: Session) -> Optional[Dict[str, Any]]:
    """Current subscription of the user's supplier record, or None"""
    subscription = (
        db.query(Subscription)
        .join(Supplier, Supplier.id == Subscription.supplier_id)
        .filter(Supplier.user_id == user_id)
        .first()
    )
    if not subscription:
        return None
    return {
        "id": subscription.id,
        "plan_name": subscription.plan_name,
        "price_usd": subscription.price_usd,
        "status": subscription.status,
        "current_period_start": subscription.current_period_start.isoformat() if subscription.current_period_start else None,
        "current_period_end": subscription.current_period_end.isoformat() if subscription.current_period_end else None,
        "credits_total": subscription.credits_total,
        "credits_used": subscription.credits_used,
        "credits_remaining": credits_remaining(subscription),
    }
