"""Payment model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, CheckConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


PAYMENT_TYPES = ("subscription", "nomination", "ticket", "unknown")


class Payment(Base):
    """Append-only ledger of successful Stripe payments.

    Exactly one of ``stripe_session_id`` / ``stripe_payment_intent_id`` is set,
    and each is unique, so a redelivered event can never add a second row.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # 'subscription', 'nomination', 'ticket', 'unknown'
    amount = Column(Integer, nullable=False)  # minor units
    currency = Column(String(3), nullable=False)
    status = Column(String(20), default="succeeded", nullable=False)
    stripe_session_id = Column(String(255), unique=True, nullable=True)
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=True)
    payment_metadata = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    user = relationship("User", back_populates="payments")

    __table_args__ = (
        CheckConstraint("type IN ('subscription', 'nomination', 'ticket', 'unknown')", name="ck_payments_type"),
        CheckConstraint("status = 'succeeded'", name="ck_payments_status"),
        CheckConstraint(
            "(stripe_session_id IS NULL) <> (stripe_payment_intent_id IS NULL)",
            name="ck_payments_single_external_key",
        ),
        Index('ix_payments_user_created', 'user_id', 'created_at'),
    )
