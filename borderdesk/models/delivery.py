import secrets
import base64
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey

from ..database import Base


class DeliveryMethod(str, Enum):
    COURIER = "courier"
    EMAIL = "email"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"


class CourierProvider(str, Enum):
    POSLAJU = "poslaju"
    DHL = "dhl"
    JNT = "jnt"
    GDEX = "gdex"


# Email deliveries move forward one step at a time; no skipping, no regression.
DELIVERY_STATUS_TRANSITIONS = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.SHIPPED}),
    DeliveryStatus.SHIPPED: frozenset({DeliveryStatus.IN_TRANSIT}),
    DeliveryStatus.IN_TRANSIT: frozenset({DeliveryStatus.DELIVERED}),
    DeliveryStatus.DELIVERED: frozenset(),
}

DELIVERY_STATUS_ORDER = (
    DeliveryStatus.PENDING,
    DeliveryStatus.SHIPPED,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.DELIVERED,
)


class DeliveryRecord(Base):
    __tablename__ = "delivery_records"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, unique=True, index=True)

    tracking_id = Column(String(20), unique=True, index=True, nullable=False)
    policy_number = Column(String(50), nullable=False, index=True)

    recipient_name = Column(String(255), nullable=False)
    recipient_email = Column(String(255), nullable=True)
    recipient_phone = Column(String(50), nullable=True)
    recipient_address = Column(Text, nullable=True)

    delivery_method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=DeliveryStatus.PENDING.value)

    # Courier deliveries are tracked by the courier, not by this system
    courier_provider = Column(String(20), nullable=True)
    courier_tracking_number = Column(String(100), nullable=True)

    # Fixed at creation from the application's payment status
    is_priority = Column(Boolean, nullable=False, default=False)

    notes = Column(Text, nullable=True)

    shipped_at = Column(DateTime, nullable=True)
    in_transit_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    email_sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @staticmethod
    def generate_tracking_id() -> str:
        random_bytes = secrets.token_bytes(5)
        token_chars = base64.b32encode(random_bytes).decode('ascii')[:8]
        return f"BD-DLV-{token_chars}"
