"""Billing domain schemas - Pydantic models for validation"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator


class CheckoutResponse(BaseModel):
    preference_id: str
    checkout_url: str


class ProfessionalPaymentRequest(BaseModel):
    amount: Decimal

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v is None or not v.is_finite():
            raise ValueError("amount must be a number")
        return v


class AgendaPaymentRequest(BaseModel):
    duration_days: Optional[int] = None


class SubscriptionStatusResponse(BaseModel):
    subscription_status: str
    subscription_expiry: Optional[datetime] = None


class WebhookAck(BaseModel):
    received: bool = True
