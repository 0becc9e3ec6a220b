"""AuditLog model"""
from sqlalchemy import Column, Integer, String, JSON, DateTime, ForeignKey, Index
from datetime import datetime, timezone
from app.models.base import Base


class AuditLog(Base):
    """Who changed what, with before/after snapshots"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(100), nullable=False)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(String(100), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index('ix_audit_logs_entity', 'entity_type', 'entity_id'),
    )
