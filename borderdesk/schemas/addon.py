from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from ..models.addon import AddonStatus, AddonType


class AddonCreate(BaseModel):
    application_id: int
    type: AddonType
    vendor_name: str
    cost_cents: int

    @field_validator("vendor_name")
    @classmethod
    def vendor_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("vendor_name cannot be empty")
        return v.strip()

    @field_validator("cost_cents")
    @classmethod
    def cost_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("cost_cents cannot be negative")
        return v


class AddonStatusUpdate(BaseModel):
    to_status: AddonStatus
    tracking_number: Optional[str] = None
    expected_version: Optional[int] = None


class AddonResponse(BaseModel):
    id: int
    application_id: int
    type: str
    vendor_name: str
    cost_cents: int
    status: str
    tracking_number: Optional[str]
    created_at: datetime
    version: int

    class Config:
        from_attributes = True
