from datetime import datetime, date
from typing import Optional, List
from pydantic import BaseModel, EmailStr, field_validator

from ..models.application import ApplicationStatus, DeliveryOption, VehicleType


class ApplicationCreate(BaseModel):
    customer_name: str
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    route_origin: str
    route_destination: str
    travel_start: date
    travel_end: date
    passenger_count: int = 1
    vehicle_type: VehicleType = VehicleType.CAR
    vehicle_plate: Optional[str] = None
    package_name: Optional[str] = None
    delivery_option: DeliveryOption = DeliveryOption.COUNTER
    total_price_cents: int = 0

    @field_validator("customer_name", "route_origin", "route_destination")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("cannot be empty")
        return v.strip()

    @field_validator("passenger_count")
    @classmethod
    def passengers_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("passenger_count must be at least 1")
        return v

    @field_validator("total_price_cents")
    @classmethod
    def price_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("total_price_cents cannot be negative")
        return v


class ApplicationResponse(BaseModel):
    id: int
    tracking_id: str
    status: str
    status_label: Optional[str] = None
    workflow_stage: Optional[int] = None
    submission_date: datetime
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    route_origin: str
    route_destination: str
    travel_start: date
    travel_end: date
    passenger_count: int
    vehicle_type: str
    vehicle_plate: Optional[str]
    package_name: Optional[str]
    delivery_option: str
    payment_status: str
    total_price_cents: int
    rejection_reason: Optional[str]
    version: int
    updated_at: datetime

    class Config:
        from_attributes = True


class ApplicationTransitionRequest(BaseModel):
    to_status: ApplicationStatus
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class WorkflowValidationResponse(BaseModel):
    from_status: str
    to_status: str
    is_valid: bool
    blocked_reason: Optional[str] = None
    missing_requirements: List[str] = []

    class Config:
        from_attributes = True


class AllowedTransitionsResponse(BaseModel):
    current_status: str
    current_label: str
    transitions: List[WorkflowValidationResponse]
