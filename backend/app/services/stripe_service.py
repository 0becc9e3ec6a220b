import json
import logging
import stripe
from typing import Dict, Optional, Any
from urllib.parse import quote

from app.core.config import settings
from app.core.exceptions import WebhookVerificationError
from app.schemas.stripe_events import StripeWebhookEvent

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY


# ============================================================================
# WEBHOOK VERIFICATION
# ============================================================================

def verify_stripe_event(payload: bytes, sig_header: Optional[str]) -> StripeWebhookEvent:
    """Authenticate a webhook delivery and return the parsed event.

    Uses the SDK's own signature check against STRIPE_WEBHOOK_SECRET. Nothing
    in the body is trusted until this returns.

    Raises:
        WebhookVerificationError: missing header, unconfigured secret, bad
            signature or unparseable body
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Webhook secret not configured")
        raise WebhookVerificationError("Webhook secret not configured")
    if not sig_header:
        raise WebhookVerificationError("Missing stripe-signature header")

    try:
        stripe.Webhook.construct_event(
            payload, sig_header, settings.STRIPE_WEBHOOK_SECRET
        )
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise WebhookVerificationError("Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error(f"Invalid webhook signature: {e}")
        raise WebhookVerificationError("Webhook signature verification failed")

    # The signature covers these exact bytes; decode them to plain dicts
    body = json.loads(payload)
    logger.info(f"Stripe webhook event: {body['type']} ({body['id']})")
    return StripeWebhookEvent(
        id=body["id"],
        type=body["type"],
        created=body.get("created") or 0,
        data_object=body.get("data", {}).get("object") or {},
    )


# ============================================================================
# CHECKOUT
# ============================================================================

def _subscription_line_item() -> Dict[str, Any]:
    return {
        "price_data": {
            "currency": "usd",
            "product_data": {
                "name": settings.SUBSCRIPTION_PLAN_NAME,
                "description": f"Monthly subscription for {settings.SUBSCRIPTION_CREDITS} marketplace ad credits",
            },
            "unit_amount": settings.SUBSCRIPTION_PRICE_CENTS,
            "recurring": {"interval": "month"},
        },
        "quantity": 1,
    }


def _one_off_line_item(checkout_type: str, amount: int, currency: str,
                       quantity: int, description: Optional[str]) -> Dict[str, Any]:
    return {
        "price_data": {
            "currency": currency,
            "product_data": {
                "name": "Award Nomination" if checkout_type == "nomination" else "Event Ticket",
                "description": description or "",
            },
            "unit_amount": amount,
        },
        "quantity": quantity,
    }


def create_checkout_session(
    checkout_type: str,
    user_id: int,
    success_url: str,
    cancel_url: str,
    customer_email: Optional[str] = None,
    amount: Optional[int] = None,
    currency: str = "usd",
    quantity: int = 1,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, str]:
    """Create a Stripe Checkout Session.

    ``subscription`` opens a recurring Publisher Pack checkout; ``nomination``
    and ``ticket`` are one-off payments of ``amount`` minor units. The
    session metadata always carries ``user_id`` and ``type`` so the webhook can
    attribute the payment.

    Raises:
        ValueError: Stripe not configured, or a one-off checkout without amount
    """
    if not settings.STRIPE_SECRET_KEY:
        raise ValueError("Stripe not configured")

    if checkout_type == "subscription":
        mode = "subscription"
        line_items = [_subscription_line_item()]
    else:
        if not amount:
            raise ValueError(f"Amount is required for {checkout_type} checkout")
        mode = "payment"
        line_items = [_one_off_line_item(checkout_type, amount, currency, quantity, description)]

    session_metadata = {
        key: str(value) for key, value in (metadata or {}).items() if value is not None
    }
    session_metadata.update({"user_id": str(user_id), "type": checkout_type})

    params = {
        "mode": mode,
        "line_items": line_items,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": session_metadata,
    }
    if customer_email:
        params["customer_email"] = customer_email

    session = stripe.checkout.Session.create(**params)
    logger.info(f"Created {mode} checkout session {session.id} for user {user_id} ({checkout_type})")
    return {"session_id": session.id, "url": session.url}


def build_ticket_qr_code(ticket_id: int, award_name: Optional[str]) -> str:
    """URL of a QR image encoding the ticket id and event name"""
    qr_data = f"TICKET:{ticket_id}:{award_name or ''}"
    return f"https://api.qrserver.com/v1/create-qr-code/?size=200x200&data={quote(qr_data, safe='')}"
