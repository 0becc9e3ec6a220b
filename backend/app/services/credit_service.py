"""Credit service - ledger logic for ad-posting credits

Invariant at every mutation site: 0 <= credits_used <= credits_total.
The only increment path is ad approval; the only reset paths are a completed
subscription checkout and invoice payment.
Each is a single guarded statement so concurrent writers are
serialized by the database rather than by this process.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, or_, update
from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientCreditsError
from app.models.subscription import Subscription

logger = logging.getLogger(__name__)


def get_subscription_for_supplier(supplier_id: int, db: Session) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.supplier_id == supplier_id).first()


def consume_credit(supplier_id: int, db: Session) -> None:
    """Spend one credit from the supplier's active subscription.

    Does not commit; the caller owns the transaction so the credit and
    whatever it pays for land together.

    Raises:
        InsufficientCreditsError: no active subscription row with a free credit
    """
    stmt = (
        update(Subscription)
        .where(
            Subscription.supplier_id == supplier_id,
            Subscription.status == "active",
            Subscription.credits_used < Subscription.credits_total,
        )
        .values(
            credits_used=Subscription.credits_used + 1,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        # Lost a race with another approval, or the subscription changed under us
        raise InsufficientCreditsError("Supplier has insufficient credits to approve this ad")
    logger.info(f"Consumed 1 credit for supplier {supplier_id}")


def status_event_applies(event_created: int):
    """Rows whose status was last written by an event no newer than this one"""
    return or_(
        Subscription.last_event_created.is_(None),
        Subscription.last_event_created <= event_created,
    )


def credits_not_reset_since(event_created: int):
    # Strict: a redelivered reset must not refill credits spent since
    return or_(
        Subscription.credits_reset_event_created.is_(None),
        Subscription.credits_reset_event_created < event_created,
    )


def reset_credits(stripe_subscription_id: str, event_created: int, db: Session) -> bool:
    """Start a new billing period: credits_used=0 and status=active.

    The refill is deduplicated on credits_reset_event_created, which only
    credit-resetting events write, so status events in the same second (or
    newer ones delivered first) never block it. Status is set to active only
    when no newer status event has been applied. Does not commit.

    Returns:
        True if the credits were reset
    """
    status_is_current = status_event_applies(event_created)
    stmt = (
        update(Subscription)
        .where(
            Subscription.stripe_subscription_id == stripe_subscription_id,
            credits_not_reset_since(event_created),
        )
        .values(
            credits_used=0,
            credits_reset_event_created=event_created,
            status=case((status_is_current, "active"), else_=Subscription.status),
            last_event_created=case(
                (status_is_current, event_created), else_=Subscription.last_event_created
            ),
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount == 1


def credits_remaining(subscription: Optional[Subscription]) -> int:
    if subscription is None:
        return 0
    return subscription.credits_remaining
