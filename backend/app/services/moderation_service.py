"""Moderation service - marketplace ad approval gate

Approving an ad spends one of the supplier's subscription credits. The credit
and the status change commit together or not at all.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AdNotFoundError, InsufficientCreditsError, InvalidModerationError,
    ModerationError, SubscriptionRequiredError
)
from app.core.metrics import ad_moderations_counter
from app.db.session import transaction
from app.models.marketplace_ad import MarketplaceAd
from app.models.user import User
from app.services.audit_service import log_audit
from app.services.credit_service import consume_credit, get_subscription_for_supplier

logger = logging.getLogger(__name__)

MODERATION_ACTIONS = ("approve", "reject")


@dataclass
class ModerationResult:
    ad: Dict[str, Any]
    action: str

    @property
    def message(self) -> str:
        return f"Ad {'approved' if self.action == 'approve' else 'rejected'} successfully"


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; they were written as UTC
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def is_ad_live(ad: MarketplaceAd, at: Optional[datetime] = None) -> bool:
    """Approved and inside its [go_live_at, expire_at) window"""
    if ad.status != "approved" or ad.go_live_at is None or ad.expire_at is None:
        return False
    at = _as_utc(at or datetime.now(timezone.utc))
    return _as_utc(ad.go_live_at) <= at < _as_utc(ad.expire_at)


def _action_label(action: str) -> str:
    return action if action in MODERATION_ACTIONS else "invalid"


def _validate_request(action: str, reason: Optional[str]) -> Optional[str]:
    if action not in MODERATION_ACTIONS:
        raise InvalidModerationError("Invalid action. Use 'approve' or 'reject'")
    reason = reason.strip() if reason else None
    if action == "reject" and not reason:
        raise InvalidModerationError("Rejection reason is required")
    return reason


def _check_can_approve(ad: MarketplaceAd, db: Session) -> None:
    subscription = get_subscription_for_supplier(ad.supplier_id, db)
    if subscription is None or subscription.status != "active":
        raise SubscriptionRequiredError("Supplier must have an active subscription to approve ads")
    if subscription.credits_total - subscription.credits_used < 1:
        raise InsufficientCreditsError("Supplier has insufficient credits to approve this ad")


def _set_ad_status(ad_id: int, values: Dict[str, Any], db: Session) -> None:
    stmt = (
        update(MarketplaceAd)
        .where(MarketplaceAd.id == ad_id, MarketplaceAd.status == "pending")
        .values(updated_at=datetime.now(timezone.utc), **values)
        .execution_options(synchronize_session=False)
    )
    if db.execute(stmt).rowcount != 1:
        # Another moderator got here between our read and this write
        raise InvalidModerationError("Ad is not in pending status")


def moderate_ad(
    ad_id: int,
    action: str,
    db: Session,
    reason: Optional[str] = None,
    actor: Optional[User] = None,
    request_info: Optional[Dict[str, str]] = None,
) -> ModerationResult:
    """Approve or reject a pending marketplace ad.

    Every precondition is checked before anything is written. Approval spends
    a credit and publishes the ad for AD_LIVE_DAYS in a single transaction;
    rejection records the reason and never touches credits. The decision is
    audited after commit.

    Raises:
        InvalidModerationError: bad action, missing reason, ad not pending
        AdNotFoundError: no ad with this id
        SubscriptionRequiredError: supplier subscription missing or not active
        InsufficientCreditsError: no credits left this period
    """
    try:
        reason = _validate_request(action, reason)

        ad = db.query(MarketplaceAd).filter(MarketplaceAd.id == ad_id).first()
        if not ad:
            raise AdNotFoundError("Ad not found")
        if ad.status != "pending":
            raise InvalidModerationError(f"Ad is not in pending status (current status: {ad.status})")
        before = ad.to_dict()

        if action == "approve":
            _check_can_approve(ad, db)
            now = datetime.now(timezone.utc)
            with transaction(db):
                consume_credit(ad.supplier_id, db)
                _set_ad_status(ad_id, {
                    "status": "approved",
                    "go_live_at": now,
                    "expire_at": now + timedelta(days=settings.AD_LIVE_DAYS),
                    "moderation_reason": None,
                }, db)
        else:
            with transaction(db):
                _set_ad_status(ad_id, {"status": "rejected", "moderation_reason": reason}, db)
    except ModerationError as e:
        ad_moderations_counter.labels(action=_action_label(action), outcome="refused").inc()
        logger.info(f"Moderation of ad {ad_id} refused ({action}): {e.message}")
        raise
    except Exception:
        ad_moderations_counter.labels(action=_action_label(action), outcome="error").inc()
        raise

    db.refresh(ad)
    after = ad.to_dict()
    ad_moderations_counter.labels(action=action, outcome="success").inc()
    logger.info(f"Ad {ad_id} {after['status']} by user {actor.id if actor else None}")

    log_audit(
        f"moderate_{action}",
        "marketplace_ads",
        ad_id,
        db,
        actor_id=actor.id if actor else None,
        old_values=before,
        new_values=after,
        request_info=request_info,
    )
    return ModerationResult(ad=after, action=action)


def bulk_moderate_ads(
    ad_ids: List[int],
    action: str,
    db: Session,
    reason: Optional[str] = None,
    actor: Optional[User] = None,
    request_info: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Moderate each ad in order, each in its own transaction.

    One ad failing does not stop or undo the others; its error is collected.
    """
    if action == "reject" and not (reason and reason.strip()):
        raise InvalidModerationError("Rejection reason is required for bulk rejection")

    results: Dict[str, List[Any]] = {"approved": [], "rejected": [], "errors": []}
    for ad_id in ad_ids:
        try:
            result = moderate_ad(ad_id, action, db, reason=reason, actor=actor, request_info=request_info)
        except ModerationError as e:
            results["errors"].append({"adId": ad_id, "error": e.message})
            continue
        except Exception as e:
            db.rollback()
            logger.error(f"Bulk moderation failed for ad {ad_id}: {e}", exc_info=True)
            results["errors"].append({"adId": ad_id, "error": str(e)})
            continue

        if action == "approve":
            results["approved"].append(result.ad)
        else:
            results["rejected"].append(result.ad)

    return {
        "results": results,
        "summary": {
            "total": len(ad_ids),
            "approved": len(results["approved"]),
            "rejected": len(results["rejected"]),
            "errors": len(results["errors"]),
        },
    }


def list_ads_for_moderation(
    db: Session,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    """Moderation queue: pending ads first, then newest first"""
    page = max(page, 1)
    limit = min(max(limit, 1), 100)

    query = db.query(MarketplaceAd)
    if status:
        query = query.filter(MarketplaceAd.status == status)
    total = query.count()

    ads = (
        query.order_by(
            case((MarketplaceAd.status == "pending", 1), else_=2),
            MarketplaceAd.created_at.desc(),
        )
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    now = datetime.now(timezone.utc)
    items = []
    for ad in ads:
        item = ad.to_dict()
        item["is_expired"] = ad.expire_at is not None and _as_utc(ad.expire_at) < now
        items.append(item)

    return {
        "ads": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }
