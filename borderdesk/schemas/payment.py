from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from ..models.payment import PaymentMethod


class PaymentCreate(BaseModel):
    application_id: int
    method: PaymentMethod
    amount_cents: Optional[int] = None
    receipt_url: Optional[str] = None

    @field_validator("amount_cents")
    @classmethod
    def amount_positive(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("amount_cents must be positive")
        return v


class PaymentFailRequest(BaseModel):
    failure_message: Optional[str] = None
    expected_version: Optional[int] = None


class PaymentRefundRequest(BaseModel):
    reason: str
    expected_version: Optional[int] = None


class VersionedRequest(BaseModel):
    expected_version: Optional[int] = None


class PaymentResponse(BaseModel):
    id: int
    application_id: int
    method: str
    amount_cents: int
    currency: str
    status: str
    receipt_url: Optional[str]
    failure_message: Optional[str]
    refund_reason: Optional[str]
    paid_at: Optional[datetime]
    refunded_at: Optional[datetime]
    created_at: datetime
    version: int

    class Config:
        from_attributes = True
