"""Subscription model"""
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


SUBSCRIPTION_STATUSES = ("active", "past_due", "canceled")


class Subscription(Base):
    """Supplier subscription and its per-period ad credit allowance"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), unique=True, nullable=False, index=True)
    plan_name = Column(String(100), nullable=False)
    price_usd = Column(Integer, nullable=False)  # minor units (cents)
    status = Column(String(20), nullable=False)  # 'active', 'past_due', 'canceled'
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    credits_total = Column(Integer, default=0, nullable=False)
    credits_used = Column(Integer, default=0, nullable=False)
    stripe_customer_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True, index=True)
    # Unix timestamp of the newest Stripe event applied to this row; older events are ignored
    last_event_created = Column(BigInteger, nullable=True)
    # Unix timestamp of the newest event that refilled credits; only checkout and invoice.paid touch it
    credits_reset_event_created = Column(BigInteger, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    supplier = relationship("Supplier", back_populates="subscription")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'past_due', 'canceled')", name="ck_subscriptions_status"),
        CheckConstraint("credits_total >= 0", name="ck_subscriptions_credits_total"),
        CheckConstraint("credits_used >= 0 AND credits_used <= credits_total", name="ck_subscriptions_credits_used"),
    )

    @property
    def credits_remaining(self) -> int:
        return max(0, (self.credits_total or 0) - (self.credits_used or 0))

    def __repr__(self):
        return f"<Subscription(supplier_id={self.supplier_id}, status={self.status}, used={self.credits_used}/{self.credits_total})>"
