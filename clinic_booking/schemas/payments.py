"""Payment schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class PaymentMethod(str, Enum):
    """Payment method enumeration."""

    CASH = "cash"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    INSURANCE = "insurance"
    OTHER = "other"


class PaymentCreate(BaseModel):
    """Schema for recording a payment against an appointment."""

    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    method: PaymentMethod
    reference: str | None = Field(None, max_length=255)
    processed_by: str | None = Field(None, max_length=150)


class PaymentUpdate(BaseModel):
    """Schema for correcting a recorded payment."""

    amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    method: PaymentMethod | None = None
    reference: str | None = Field(None, max_length=255)


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    id: UUID
    appointment_id: UUID
    amount: Decimal
    method: PaymentMethod
    paid_on: datetime
    reference: str | None
    processed_by: str | None

    model_config = {"from_attributes": True}
