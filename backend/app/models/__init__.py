"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from app.models.base import Base
from app.models.user import User
from app.models.supplier import Supplier
from app.models.subscription import Subscription
from app.models.payment import Payment
from app.models.marketplace_ad import MarketplaceAd
from app.models.nomination import Nomination, Ticket
from app.models.stripe_event import StripeEvent
from app.models.audit_log import AuditLog

# Export all for convenience
__all__ = [
    "Base", "User", "Supplier", "Subscription", "Payment", "MarketplaceAd",
    "Nomination", "Ticket", "StripeEvent", "AuditLog"
]
