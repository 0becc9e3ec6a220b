"""Pydantic schemas for subscriptions and checkout"""
from pydantic import BaseModel, Field
from typing import Literal, Optional


class CheckoutRequest(BaseModel):
    type: Literal["subscription", "nomination", "ticket"]
    amount: Optional[int] = Field(default=None, gt=0)  # minor units, one-off payments only
    currency: str = "usd"
    quantity: int = Field(default=1, ge=1)
    description: Optional[str] = None
    nomination_id: Optional[int] = None
    ticket_id: Optional[int] = None
    award_name: Optional[str] = None
