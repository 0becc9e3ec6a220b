"""Stripe webhook route"""
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.exceptions import WebhookVerificationError
from app.core.metrics import webhook_events_counter
from app.db.session import get_db
from app.services.webhook_service import process_stripe_webhook

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


@router.post("/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Stripe webhook events

    Note: This route must be excluded from any global JSON parsing middleware
    to ensure the request body remains as raw bytes for signature verification.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    try:
        status_code, body = process_stripe_webhook(payload, sig_header, db)
    except WebhookVerificationError as e:
        webhook_events_counter.labels(event_type="unverified", outcome="rejected").inc()
        raise HTTPException(400, e.message)

    return JSONResponse(status_code=status_code, content=body)
