"""Subscriptions API routes"""
import logging
import stripe
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.schemas.subscriptions import CheckoutRequest
from app.core.security import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.services.subscription_service import create_checkout, get_supplier_subscription_summary
from app.core.config import settings

router = APIRouter(prefix="/api/subscription", tags=["subscriptions"])
logger = logging.getLogger(__name__)


@router.get("/current")
def get_current_subscription(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get the supplier subscription and remaining credits"""
    return {"subscription": get_supplier_subscription_summary(user.id, db)}


@router.post("/checkout")
def checkout(request_data: CheckoutRequest, user: User = Depends(get_current_user)):
    """Create a Stripe checkout session for a subscription, nomination or ticket"""
    try:
        return create_checkout(user, request_data, settings.FRONTEND_URL)
    except ValueError as e:
        raise HTTPException(400, str(e))
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout error for user {user.id}: {e}", exc_info=True)
        raise HTTPException(502, "Failed to create checkout session")
