from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr

from ..models.delivery import CourierProvider, DeliveryMethod, DeliveryStatus


class DeliveryCreate(BaseModel):
    application_id: int
    delivery_method: DeliveryMethod
    recipient_name: str
    recipient_email: Optional[EmailStr] = None
    recipient_phone: Optional[str] = None
    recipient_address: Optional[str] = None
    courier_provider: Optional[CourierProvider] = None
    policy_number: Optional[str] = None
    notes: Optional[str] = None


class DeliveryAdvanceRequest(BaseModel):
    to_status: Optional[DeliveryStatus] = None
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class CourierTrackingRequest(BaseModel):
    tracking_number: str
    courier_provider: Optional[CourierProvider] = None
    expected_version: Optional[int] = None


class DeliveryResponse(BaseModel):
    id: int
    application_id: int
    tracking_id: str
    policy_number: str
    recipient_name: str
    recipient_email: Optional[str]
    recipient_phone: Optional[str]
    recipient_address: Optional[str]
    delivery_method: str
    status: str
    display_status: str
    progress_percent: int
    courier_provider: Optional[str]
    courier_provider_label: Optional[str]
    courier_tracking_number: Optional[str]
    courier_tracking_url: Optional[str]
    is_priority: bool
    notes: Optional[str]
    shipped_at: Optional[datetime]
    in_transit_at: Optional[datetime]
    delivered_at: Optional[datetime]
    email_sent_at: Optional[datetime]
    created_at: datetime
    version: int


class DeliveryStatisticsResponse(BaseModel):
    total: int
    courier_deliveries: int
    email_pending: int
    email_sent: int
    priority_pending: int

    class Config:
        from_attributes = True
