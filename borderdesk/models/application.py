import secrets
import base64
from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Date, BigInteger, Text

from ..database import Base


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class DeliveryOption(str, Enum):
    COUNTER = "counter"
    POSTAL = "postal"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class VehicleType(str, Enum):
    CAR = "car"
    MOTORCYCLE = "motorcycle"
    VAN = "van"
    TRUCK = "truck"


class Application(Base):
    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    tracking_id = Column(String(20), unique=True, index=True, nullable=False)

    status = Column(String(20), nullable=False, default=ApplicationStatus.PENDING.value, index=True)
    submission_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Customer contact
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(50), nullable=True)

    # Trip details
    route_origin = Column(String(100), nullable=False)
    route_destination = Column(String(100), nullable=False)
    travel_start = Column(Date, nullable=False)
    travel_end = Column(Date, nullable=False)
    passenger_count = Column(Integer, nullable=False, default=1)
    vehicle_type = Column(String(20), nullable=False, default=VehicleType.CAR.value)
    vehicle_plate = Column(String(20), nullable=True)

    package_name = Column(String(100), nullable=True)
    delivery_option = Column(String(20), nullable=False, default=DeliveryOption.COUNTER.value)

    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    total_price_cents = Column(BigInteger, nullable=False, default=0)

    rejection_reason = Column(Text, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @staticmethod
    def generate_tracking_id() -> str:
        """Generate a unique, non-guessable application tracking id.

        Format: BD-APP-<8 chars base32>
        Example: BD-APP-A3B7C9D2
        """
        random_bytes = secrets.token_bytes(5)
        token_chars = base64.b32encode(random_bytes).decode('ascii')[:8]
        return f"BD-APP-{token_chars}"
