"""Supplier model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


class Supplier(Base):
    """A user acting as a seller on the marketplace. Never deleted, only status-transitioned."""
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)
    company_name = Column(String(255), nullable=True)
    kyc_status = Column(String(20), default="pending", nullable=False)  # 'pending', 'verified', 'rejected'
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    user = relationship("User", back_populates="supplier")
    subscription = relationship("Subscription", back_populates="supplier", uselist=False)
    ads = relationship("MarketplaceAd", back_populates="supplier")

    __table_args__ = (
        CheckConstraint("kyc_status IN ('pending', 'verified', 'rejected')", name="ck_suppliers_kyc_status"),
    )
