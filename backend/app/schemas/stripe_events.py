"""Narrow, validated shapes of the Stripe payloads the webhook handlers consume.

Only the fields the handlers read are declared; everything else in the
provider payload is ignored. Malformed payloads fail here, at the boundary,
rather than deep inside handler logic.
"""
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StripeEventType(str, Enum):
    """Event types this service reacts to. Anything else is acknowledged and ignored."""
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    INVOICE_PAID = "invoice.paid"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"

    @classmethod
    def parse(cls, value: str) -> Optional["StripeEventType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class _StripePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _expandable_id(value: Any) -> Any:
    # Stripe sends either the bare id or an expanded object carrying it
    if isinstance(value, dict):
        return value.get("id")
    return value


class StripeWebhookEvent(_StripePayload):
    """A verified Stripe event envelope"""
    id: str
    type: str
    created: int
    data_object: Dict[str, Any]


class CheckoutMetadata(_StripePayload):
    user_id: int
    type: str = "unknown"
    nomination_id: Optional[int] = None
    ticket_id: Optional[int] = None
    award_name: Optional[str] = None


class CheckoutSessionPayload(_StripePayload):
    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    amount_total: int = 0
    currency: str = "usd"
    metadata: CheckoutMetadata
    raw_metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _expandable_id(value)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "CheckoutSessionPayload":
        return cls.model_validate({**obj, "raw_metadata": obj.get("metadata") or {}})


class InvoicePayload(_StripePayload):
    customer: Optional[str] = None
    subscription: Optional[str] = None

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def normalize_ids(cls, value):
        return _expandable_id(value)


class SubscriptionPayload(_StripePayload):
    id: str
    status: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class PaymentIntentMetadata(_StripePayload):
    user_id: Optional[int] = None
    type: str = "unknown"


class PaymentIntentPayload(_StripePayload):
    id: str
    amount: int
    currency: str
    metadata: PaymentIntentMetadata = Field(default_factory=PaymentIntentMetadata)
    raw_metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "PaymentIntentPayload":
        return cls.model_validate({**obj, "raw_metadata": obj.get("metadata") or {}})
