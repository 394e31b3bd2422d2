from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, BigInteger, ForeignKey, Text

from ..database import Base
from .application import PaymentStatus


class PaymentMethod(str, Enum):
    QR = "qr"
    CASH = "cash"


PAYMENT_STATUS_TRANSITIONS = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)

    method = Column(String(10), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False, default="MYR")
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    receipt_url = Column(String(500), nullable=True)
    failure_message = Column(Text, nullable=True)
    refund_reason = Column(Text, nullable=True)

    paid_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
