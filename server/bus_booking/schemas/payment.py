"""Payment-related Pydantic schemas."""

from enum import Enum

from pydantic import BaseModel, Field

from .common import Money
from .schedule import SessionScopedRequest


class PaymentStatus(str, Enum):
    """Payment outcome reported by the gateway."""
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    PENDING = "PENDING"


class CreatePaymentIntentRequest(SessionScopedRequest):
    """Request schema for pricing the session's hold."""


class PaymentIntent(BaseModel):
    """Payment intent response schema."""

    reference: str = Field(..., description="Gateway payment reference")
    client_secret: str = Field(..., description="Secret handed to the payment widget")
    amount: Money = Field(..., description="Amount to be charged")
    status: PaymentStatus = Field(..., description="Current intent status")
