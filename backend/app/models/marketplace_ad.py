"""MarketplaceAd model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base


AD_STATUSES = ("draft", "pending", "approved", "rejected", "expired")


class MarketplaceAd(Base):
    """Listing owned by a supplier"""
    __tablename__ = "marketplace_ads"

    id = Column(Integer, primary_key=True, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    short_desc = Column(Text, nullable=True)
    status = Column(String(20), default="draft", nullable=False)
    go_live_at = Column(DateTime(timezone=True), nullable=True)
    expire_at = Column(DateTime(timezone=True), nullable=True)
    moderation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    supplier = relationship("Supplier", back_populates="ads")

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'rejected', 'expired')",
            name="ck_marketplace_ads_status",
        ),
        Index('ix_marketplace_ads_status_created', 'status', 'created_at'),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "title": self.title,
            "short_desc": self.short_desc,
            "status": self.status,
            "go_live_at": self.go_live_at.isoformat() if self.go_live_at else None,
            "expire_at": self.expire_at.isoformat() if self.expire_at else None,
            "moderation_reason": self.moderation_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
