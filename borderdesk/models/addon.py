from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, BigInteger, ForeignKey

from ..database import Base


class AddonType(str, Enum):
    TDAC = "tdac"
    INSURANCE = "insurance"
    TOWING = "towing"
    SIM_CARD = "sim_card"


class AddonStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ADDON_STATUS_TRANSITIONS = {
    AddonStatus.PENDING: frozenset({AddonStatus.CONFIRMED, AddonStatus.CANCELLED}),
    AddonStatus.CONFIRMED: frozenset({AddonStatus.COMPLETED, AddonStatus.CANCELLED}),
    AddonStatus.COMPLETED: frozenset(),
    AddonStatus.CANCELLED: frozenset(),
}


class Addon(Base):
    __tablename__ = "addons"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)

    type = Column(String(20), nullable=False)
    vendor_name = Column(String(255), nullable=False)
    cost_cents = Column(BigInteger, nullable=False)
    status = Column(String(20), nullable=False, default=AddonStatus.PENDING.value)
    tracking_number = Column(String(100), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
