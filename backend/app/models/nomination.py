"""Nomination and Ticket models (payment status only)"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime, timezone
from app.models.base import Base


class Nomination(Base):
    """Award nomination; paid for through a one-off checkout"""
    __tablename__ = "nominations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    payment_status = Column(String(20), default="pending", nullable=False)  # 'pending', 'paid'
    stripe_session_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)


class Ticket(Base):
    """Event ticket; paid for through a one-off checkout"""
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    award_name = Column(String(255), nullable=True)
    payment_status = Column(String(20), default="pending", nullable=False)  # 'pending', 'paid'
    stripe_session_id = Column(String(255), nullable=True)
    qr_code = Column(String(1024), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
