"""Ad moderation gate and credit ledger tests"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import (
    AdNotFoundError, InsufficientCreditsError, InvalidModerationError, SubscriptionRequiredError
)
from app.models.audit_log import AuditLog
from app.models.marketplace_ad import MarketplaceAd
from app.services.credit_service import consume_credit, credits_remaining
from app.services.moderation_service import (
    bulk_moderate_ads, is_ad_live, list_ads_for_moderation, moderate_ad
)


def utc(moment):
    return moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment


@pytest.mark.critical
class TestApproval:
    """Approving spends exactly one credit and publishes the ad"""

    def test_approve_consumes_credit_and_sets_window(self, db_session, supplier, make_subscription, make_ad):
        subscription = make_subscription(supplier, credits_used=0)
        ad = make_ad(supplier)

        result = moderate_ad(ad.id, "approve", db_session)

        assert result.message == "Ad approved successfully"
        assert result.ad["status"] == "approved"
        db_session.refresh(subscription)
        db_session.refresh(ad)
        assert subscription.credits_used == 1
        assert ad.status == "approved"
        assert ad.moderation_reason is None
        assert utc(ad.expire_at) - utc(ad.go_live_at) == timedelta(days=30)

    def test_approve_without_subscription(self, db_session, supplier, make_ad):
        ad = make_ad(supplier)

        with pytest.raises(SubscriptionRequiredError) as exc_info:
            moderate_ad(ad.id, "approve", db_session)

        assert exc_info.value.message == "Supplier must have an active subscription to approve ads"
        db_session.refresh(ad)
        assert ad.status == "pending"

    @pytest.mark.parametrize("status", ["past_due", "canceled"])
    def test_approve_with_inactive_subscription(self, db_session, supplier, make_subscription, make_ad, status):
        subscription = make_subscription(supplier, status=status, credits_used=0)
        ad = make_ad(supplier)

        with pytest.raises(SubscriptionRequiredError):
            moderate_ad(ad.id, "approve", db_session)

        db_session.refresh(subscription)
        assert subscription.credits_used == 0

    def test_approve_with_no_credits_left(self, db_session, supplier, make_subscription, make_ad):
        subscription = make_subscription(supplier, credits_used=3)
        ad = make_ad(supplier)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            moderate_ad(ad.id, "approve", db_session)

        assert exc_info.value.message == "Supplier has insufficient credits to approve this ad"
        db_session.refresh(subscription)
        db_session.refresh(ad)
        assert subscription.credits_used == 3
        assert ad.status == "pending"

    @pytest.mark.parametrize("status", ["draft", "approved", "rejected", "expired"])
    def test_only_pending_ads_can_be_moderated(self, db_session, supplier, make_subscription, make_ad, status):
        subscription = make_subscription(supplier)
        ad = make_ad(supplier, status=status)

        with pytest.raises(InvalidModerationError) as exc_info:
            moderate_ad(ad.id, "approve", db_session)

        assert exc_info.value.message == f"Ad is not in pending status (current status: {status})"
        db_session.refresh(subscription)
        assert subscription.credits_used == 0

    def test_missing_ad(self, db_session):
        with pytest.raises(AdNotFoundError) as exc_info:
            moderate_ad(99999, "approve", db_session)
        assert exc_info.value.status_code == 404

    def test_invalid_action(self, db_session, supplier, make_ad):
        ad = make_ad(supplier)
        with pytest.raises(InvalidModerationError) as exc_info:
            moderate_ad(ad.id, "publish", db_session)
        assert exc_info.value.message == "Invalid action. Use 'approve' or 'reject'"

    def test_failed_ad_update_rolls_back_credit(self, db_session, supplier, make_subscription, make_ad):
        """Credit and ad status commit together or not at all"""
        subscription = make_subscription(supplier, credits_used=1)
        ad = make_ad(supplier)

        with patch(
            "app.services.moderation_service._set_ad_status",
            side_effect=RuntimeError("connection reset"),
        ):
            with pytest.raises(RuntimeError):
                moderate_ad(ad.id, "approve", db_session)

        db_session.refresh(subscription)
        db_session.refresh(ad)
        assert subscription.credits_used == 1
        assert ad.status == "pending"
        assert ad.go_live_at is None

    def test_ad_moderated_concurrently_does_not_spend_credit(self, db_session, supplier, make_subscription, make_ad):
        """The status guard on the write catches an ad approved between our read and write"""
        subscription = make_subscription(supplier)
        ad = make_ad(supplier)

        real_consume = consume_credit

        def consume_then_race(supplier_id, db):
            real_consume(supplier_id, db)
            db.execute(
                MarketplaceAd.__table__.update()
                .where(MarketplaceAd.id == ad.id)
                .values(status="rejected")
            )

        with patch("app.services.moderation_service.consume_credit", side_effect=consume_then_race):
            with pytest.raises(InvalidModerationError):
                moderate_ad(ad.id, "approve", db_session)

        db_session.refresh(subscription)
        assert subscription.credits_used == 0


@pytest.mark.critical
class TestRejection:
    """Rejecting needs a reason and never touches credits"""

    def test_reject_with_reason(self, db_session, supplier, make_subscription, make_ad):
        subscription = make_subscription(supplier, credits_used=1)
        ad = make_ad(supplier)

        result = moderate_ad(ad.id, "reject", db_session, reason="  Photos are watermarked  ")

        assert result.message == "Ad rejected successfully"
        db_session.refresh(ad)
        db_session.refresh(subscription)
        assert ad.status == "rejected"
        assert ad.moderation_reason == "Photos are watermarked"
        assert subscription.credits_used == 1

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reject_requires_reason(self, db_session, supplier, make_ad, reason):
        ad = make_ad(supplier)

        with pytest.raises(InvalidModerationError) as exc_info:
            moderate_ad(ad.id, "reject", db_session, reason=reason)

        assert exc_info.value.message == "Rejection reason is required"
        db_session.refresh(ad)
        assert ad.status == "pending"

    def test_reject_without_subscription_is_allowed(self, db_session, supplier, make_ad):
        ad = make_ad(supplier)
        moderate_ad(ad.id, "reject", db_session, reason="Duplicate listing")
        db_session.refresh(ad)
        assert ad.status == "rejected"


@pytest.mark.critical
class TestCreditLedger:
    """0 <= credits_used <= credits_total always holds"""

    def test_consume_credit_stops_at_total(self, db_session, supplier, make_subscription):
        subscription = make_subscription(supplier, credits_total=2, credits_used=0)

        consume_credit(supplier.id, db_session)
        consume_credit(supplier.id, db_session)
        with pytest.raises(InsufficientCreditsError):
            consume_credit(supplier.id, db_session)
        db_session.commit()

        db_session.refresh(subscription)
        assert subscription.credits_used == 2
        assert credits_remaining(subscription) == 0

    def test_consume_credit_requires_active(self, db_session, supplier, make_subscription):
        make_subscription(supplier, status="past_due")
        with pytest.raises(InsufficientCreditsError):
            consume_credit(supplier.id, db_session)

    def test_database_rejects_overspent_row(self, db_session, supplier, make_subscription):
        subscription = make_subscription(supplier, credits_total=3, credits_used=3)
        subscription.credits_used = 4
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_credits_remaining_without_subscription(self):
        assert credits_remaining(None) == 0


@pytest.mark.high
class TestLiveWindow:
    """Approved ads are live for [go_live_at, go_live_at + 30 days)"""

    def test_window_boundaries(self, db_session, supplier, make_subscription, make_ad):
        make_subscription(supplier)
        ad = make_ad(supplier)
        moderate_ad(ad.id, "approve", db_session)
        db_session.refresh(ad)

        go_live = utc(ad.go_live_at)
        assert is_ad_live(ad, go_live)
        assert is_ad_live(ad, go_live + timedelta(days=30) - timedelta(microseconds=1))
        assert not is_ad_live(ad, go_live + timedelta(days=30))
        assert not is_ad_live(ad, go_live - timedelta(seconds=1))

    def test_unapproved_ad_is_never_live(self, db_session, supplier, make_ad):
        ad = make_ad(supplier)
        assert not is_ad_live(ad, datetime.now(timezone.utc))


@pytest.mark.critical
class TestBulkModeration:
    """Each ad is decided independently"""

    def test_bulk_approve_runs_out_of_credits(self, db_session, supplier, make_subscription, make_ad):
        subscription = make_subscription(supplier, credits_total=3, credits_used=1)
        ads = [make_ad(supplier) for _ in range(3)]

        outcome = bulk_moderate_ads([ad.id for ad in ads], "approve", db_session)

        assert outcome["summary"] == {"total": 3, "approved": 2, "rejected": 0, "errors": 1}
        assert [a["id"] for a in outcome["results"]["approved"]] == [ads[0].id, ads[1].id]
        assert outcome["results"]["errors"] == [{
            "adId": ads[2].id,
            "error": "Supplier has insufficient credits to approve this ad",
        }]
        db_session.refresh(subscription)
        assert subscription.credits_used == 3
        db_session.refresh(ads[2])
        assert ads[2].status == "pending"

    def test_bulk_approve_skips_already_approved(self, db_session, supplier, make_subscription, make_ad):
        subscription = make_subscription(supplier)
        pending = make_ad(supplier)
        approved = make_ad(supplier, status="approved")
        approved_before = approved.to_dict()

        outcome = bulk_moderate_ads([pending.id, approved.id], "approve", db_session)

        assert outcome["summary"] == {"total": 2, "approved": 1, "rejected": 0, "errors": 1}
        assert [a["id"] for a in outcome["results"]["approved"]] == [pending.id]
        assert outcome["results"]["errors"] == [{
            "adId": approved.id,
            "error": "Ad is not in pending status (current status: approved)",
        }]
        db_session.refresh(subscription)
        assert subscription.credits_used == 1
        db_session.refresh(pending)
        assert pending.status == "approved"
        db_session.refresh(approved)
        assert approved.to_dict() == approved_before

    def test_bulk_reject_requires_reason_up_front(self, db_session, supplier, make_ad):
        ad = make_ad(supplier)

        with pytest.raises(InvalidModerationError) as exc_info:
            bulk_moderate_ads([ad.id], "reject", db_session)

        assert exc_info.value.message == "Rejection reason is required for bulk rejection"
        db_session.refresh(ad)
        assert ad.status == "pending"

    def test_bulk_collects_missing_and_non_pending(self, db_session, supplier, make_ad):
        pending = make_ad(supplier)
        approved = make_ad(supplier, status="approved")

        outcome = bulk_moderate_ads([pending.id, 424242, approved.id], "reject", db_session, reason="Off-brand")

        assert outcome["summary"] == {"total": 3, "approved": 0, "rejected": 1, "errors": 2}
        assert {e["adId"] for e in outcome["results"]["errors"]} == {424242, approved.id}


@pytest.mark.high
class TestAudit:
    """Every decision is audited; audit failure never undoes the decision"""

    def test_decision_is_audited(self, db_session, admin_user, supplier, make_subscription, make_ad):
        make_subscription(supplier)
        ad = make_ad(supplier)

        moderate_ad(
            ad.id, "approve", db_session, actor=admin_user,
            request_info={"ip_address": "203.0.113.7", "user_agent": "pytest"},
        )

        entry = db_session.query(AuditLog).one()
        assert entry.user_id == admin_user.id
        assert entry.action == "moderate_approve"
        assert entry.entity_type == "marketplace_ads"
        assert entry.entity_id == str(ad.id)
        assert entry.old_values["status"] == "pending"
        assert entry.new_values["status"] == "approved"
        assert entry.ip_address == "203.0.113.7"

    def test_audit_failure_is_swallowed(self, db_session, supplier, make_subscription, make_ad, caplog):
        subscription = make_subscription(supplier)
        ad = make_ad(supplier)

        with patch("app.services.audit_service.AuditLog", side_effect=RuntimeError("audit table locked")):
            result = moderate_ad(ad.id, "approve", db_session)

        assert result.ad["status"] == "approved"
        db_session.refresh(subscription)
        assert subscription.credits_used == 1
        assert db_session.query(AuditLog).count() == 0
        assert any(r.name == "audit" and r.levelname == "ERROR" for r in caplog.records)


class TestModerationQueue:
    def test_pending_first_then_newest(self, db_session, supplier, make_ad):
        old_approved = make_ad(supplier, status="approved")
        pending = make_ad(supplier)
        new_rejected = make_ad(supplier, status="rejected")
        old_approved.created_at = datetime.now(timezone.utc) - timedelta(days=2)
        db_session.commit()

        page = list_ads_for_moderation(db_session)

        assert [a["id"] for a in page["ads"]] == [pending.id, new_rejected.id, old_approved.id]
        assert page["pagination"] == {"page": 1, "limit": 20, "total": 3, "pages": 1}

    def test_status_filter_and_expiry_flag(self, db_session, supplier, make_ad):
        expired = make_ad(supplier, status="approved")
        expired.go_live_at = datetime.now(timezone.utc) - timedelta(days=40)
        expired.expire_at = datetime.now(timezone.utc) - timedelta(days=10)
        make_ad(supplier)
        db_session.commit()

        page = list_ads_for_moderation(db_session, status="approved")

        assert len(page["ads"]) == 1
        assert page["ads"][0]["is_expired"] is True
