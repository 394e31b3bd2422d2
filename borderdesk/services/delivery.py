import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..database import check_version, flush
from ..errors import InvalidTransitionError, NotFoundError, ValidationError
from ..models.application import Application, ApplicationStatus, PaymentStatus
from ..models.audit import AuditAction
from ..models.delivery import (
    CourierProvider,
    DeliveryMethod,
    DeliveryRecord,
    DeliveryStatus,
    DELIVERY_STATUS_ORDER,
    DELIVERY_STATUS_TRANSITIONS,
)
from ..models.user import Actor
from ..rbac import Action, Resource, RBACEvaluator, default_evaluator
from ..state_machine import validate_status_transition
from .audit import AuditService

logger = logging.getLogger(__name__)


EXTERNAL_TRACKING_LABEL = "External Tracking"

DELIVERY_STATUS_LABELS = {
    DeliveryStatus.PENDING: "Pending",
    DeliveryStatus.SHIPPED: "Shipped",
    DeliveryStatus.IN_TRANSIT: "In Transit",
    DeliveryStatus.DELIVERED: "Delivered",
}

COURIER_PROVIDER_LABELS = {
    CourierProvider.POSLAJU: "Pos Laju",
    CourierProvider.DHL: "DHL",
    CourierProvider.JNT: "J&T Express",
    CourierProvider.GDEX: "GDex",
}

COURIER_TRACKING_URLS = {
    CourierProvider.POSLAJU: "https://www.pos.com.my/track?trackingId={tracking_number}",
    CourierProvider.DHL: "https://www.dhl.com/my-en/home/tracking.html?tracking-id={tracking_number}",
    CourierProvider.JNT: "https://www.jtexpress.my/track?billcodes={tracking_number}",
    CourierProvider.GDEX: "https://www.gdexpress.com/mytracking/{tracking_number}",
}

if set(DeliveryStatus) - set(DELIVERY_STATUS_LABELS):
    raise RuntimeError("Every delivery status needs a label")
for _table in (COURIER_PROVIDER_LABELS, COURIER_TRACKING_URLS):
    if set(CourierProvider) - set(_table):
        raise RuntimeError("Every courier provider needs a label and a tracking URL")

STATUS_AUDIT_ACTIONS = {
    DeliveryStatus.SHIPPED: AuditAction.DELIVERY_SHIPPED,
    DeliveryStatus.IN_TRANSIT: AuditAction.DELIVERY_IN_TRANSIT,
    DeliveryStatus.DELIVERED: AuditAction.DELIVERY_COMPLETED,
}

STATUS_TIMESTAMP_FIELDS = {
    DeliveryStatus.SHIPPED: "shipped_at",
    DeliveryStatus.IN_TRANSIT: "in_transit_at",
    DeliveryStatus.DELIVERED: "delivered_at",
}


def is_courier(record: DeliveryRecord) -> bool:
    return record.delivery_method == DeliveryMethod.COURIER.value


def display_status(record: DeliveryRecord) -> str:
    """Courier records are tracked by the courier, whatever status is stored here."""
    if is_courier(record):
        return EXTERNAL_TRACKING_LABEL
    return DELIVERY_STATUS_LABELS[DeliveryStatus(record.status)]


def progress_percent(record: DeliveryRecord) -> int:
    index = DELIVERY_STATUS_ORDER.index(DeliveryStatus(record.status))
    return round(index / (len(DELIVERY_STATUS_ORDER) - 1) * 100)


def is_delivery_completed(record: DeliveryRecord) -> bool:
    if is_courier(record):
        return bool(record.courier_tracking_number)
    return record.status == DeliveryStatus.DELIVERED.value


def courier_tracking_url(record: DeliveryRecord) -> Optional[str]:
    if not is_courier(record) or not record.courier_provider or not record.courier_tracking_number:
        return None
    template = COURIER_TRACKING_URLS[CourierProvider(record.courier_provider)]
    return template.format(tracking_number=record.courier_tracking_number)


def courier_provider_label(record: DeliveryRecord) -> Optional[str]:
    if not record.courier_provider:
        return None
    return COURIER_PROVIDER_LABELS[CourierProvider(record.courier_provider)]


@dataclass(frozen=True)
class DeliveryStatistics:
    total: int
    courier_deliveries: int
    email_pending: int
    email_sent: int
    priority_pending: int


class DeliveryService:
    def __init__(self, rbac: RBACEvaluator = default_evaluator):
        self.rbac = rbac

    @staticmethod
    def get_delivery(db: Session, delivery_id: int) -> DeliveryRecord:
        record = db.query(DeliveryRecord).filter(DeliveryRecord.id == delivery_id).first()
        if not record:
            raise NotFoundError(f"Delivery {delivery_id} not found")
        return record

    @staticmethod
    def find_by_tracking_id(db: Session, tracking_id: str) -> DeliveryRecord:
        """Look up by delivery tracking id, policy number or courier tracking number."""
        record = (
            db.query(DeliveryRecord)
            .filter(
                (DeliveryRecord.tracking_id == tracking_id)
                | (DeliveryRecord.policy_number == tracking_id)
                | (DeliveryRecord.courier_tracking_number == tracking_id)
            )
            .first()
        )
        if not record:
            raise NotFoundError(f"No delivery found for {tracking_id}")
        return record

    def create_delivery(
        self,
        db: Session,
        actor: Optional[Actor],
        application_id: int,
        delivery_method,
        recipient_name: str,
        recipient_email: Optional[str] = None,
        recipient_phone: Optional[str] = None,
        recipient_address: Optional[str] = None,
        courier_provider=None,
        policy_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DeliveryRecord:
        self.rbac.require(actor, Action.UPDATE, Resource.TRACKING)

        try:
            method = DeliveryMethod(delivery_method)
        except ValueError:
            raise ValidationError(f"Unknown delivery method: {delivery_method!r}")

        application = db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise NotFoundError(f"Application {application_id} not found")
        if application.status != ApplicationStatus.APPROVED.value:
            raise ValidationError(
                f"Deliveries can only be created for approved applications (current: {application.status})."
            )
        if db.query(DeliveryRecord).filter(DeliveryRecord.application_id == application.id).first():
            raise ValidationError(f"Application {application.tracking_id} already has a delivery record.")

        if not recipient_name or not recipient_name.strip():
            raise ValidationError("Recipient name is required.")
        provider = None
        if method == DeliveryMethod.EMAIL:
            if not recipient_email:
                raise ValidationError("Recipient email is required for email delivery.")
        else:
            if not courier_provider:
                raise ValidationError("A courier provider is required for courier delivery.")
            try:
                provider = CourierProvider(courier_provider)
            except ValueError:
                raise ValidationError(f"Unknown courier provider: {courier_provider!r}")
            if not recipient_address:
                raise ValidationError("Recipient address is required for courier delivery.")

        record = DeliveryRecord(
            application_id=application.id,
            tracking_id=DeliveryRecord.generate_tracking_id(),
            policy_number=policy_number or application.tracking_id.replace("-APP-", "-POL-"),
            recipient_name=recipient_name.strip(),
            recipient_email=recipient_email,
            recipient_phone=recipient_phone,
            recipient_address=recipient_address,
            delivery_method=method.value,
            status=DeliveryStatus.PENDING.value,
            courier_provider=provider.value if provider else None,
            is_priority=application.payment_status == PaymentStatus.PAID.value,
            notes=notes,
        )
        db.add(record)
        flush(db)

        AuditService.log_delivery_action(
            db, actor, AuditAction.STATUS_CHANGED, record.id, application.id,
            new_status=record.status,
            notes="Delivery record created",
            metadata={"delivery_method": method.value, "is_priority": record.is_priority},
        )
        logger.info(f"Created {method.value} delivery {record.tracking_id} for application {application.id}")
        return record

    def advance_status(
        self,
        db: Session,
        actor: Optional[Actor],
        delivery_id: int,
        to_status=None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> DeliveryRecord:
        """Move an email delivery forward one step. Courier records are not driven here."""
        self.rbac.require(actor, Action.UPDATE, Resource.TRACKING)

        record = self.get_delivery(db, delivery_id)
        check_version(record, expected_version)
        current = DeliveryStatus(record.status)

        if to_status is None:
            index = DELIVERY_STATUS_ORDER.index(current)
            if index == len(DELIVERY_STATUS_ORDER) - 1:
                raise InvalidTransitionError(current.value, current.value, "Delivery is already delivered.")
            target = DELIVERY_STATUS_ORDER[index + 1]
        else:
            try:
                target = DeliveryStatus(to_status)
            except ValueError:
                raise ValidationError(f"Unknown delivery status: {to_status!r}")

        if is_courier(record):
            raise InvalidTransitionError(
                current.value,
                target.value,
                "Courier deliveries are tracked by the courier. Assign a tracking number instead.",
            )
        validate_status_transition(DELIVERY_STATUS_TRANSITIONS, current, target, "Delivery")

        now = datetime.utcnow()
        record.status = target.value
        setattr(record, STATUS_TIMESTAMP_FIELDS[target], now)
        if target == DeliveryStatus.DELIVERED:
            record.email_sent_at = now
        if notes:
            record.notes = notes

        AuditService.log_delivery_action(
            db, actor, STATUS_AUDIT_ACTIONS[target], record.id, record.application_id,
            previous_status=current.value,
            new_status=target.value,
            notes=notes,
        )
        flush(db)
        logger.info(f"Delivery {record.tracking_id} moved {current.value} -> {target.value}")
        return record

    def assign_courier_tracking(
        self,
        db: Session,
        actor: Optional[Actor],
        delivery_id: int,
        tracking_number: str,
        courier_provider=None,
        expected_version: Optional[int] = None,
    ) -> DeliveryRecord:
        self.rbac.require(actor, Action.UPDATE, Resource.TRACKING)

        record = self.get_delivery(db, delivery_id)
        check_version(record, expected_version)
        if not is_courier(record):
            raise ValidationError("Courier tracking numbers can only be assigned to courier deliveries.")

        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise ValidationError("A courier tracking number is required.")
        if courier_provider is not None:
            try:
                record.courier_provider = CourierProvider(courier_provider).value
            except ValueError:
                raise ValidationError(f"Unknown courier provider: {courier_provider!r}")

        previous_number = record.courier_tracking_number
        previous_status = record.status
        record.courier_tracking_number = tracking_number
        if record.status == DeliveryStatus.PENDING.value:
            record.status = DeliveryStatus.SHIPPED.value
        if record.shipped_at is None:
            record.shipped_at = datetime.utcnow()

        AuditService.log_delivery_action(
            db, actor, AuditAction.DELIVERY_SHIPPED, record.id, record.application_id,
            previous_status=previous_status,
            new_status=record.status,
            metadata={
                "courier_provider": record.courier_provider,
                "courier_tracking_number": tracking_number,
                "previous_tracking_number": previous_number,
            },
        )
        flush(db)
        logger.info(f"Assigned courier tracking {tracking_number} to delivery {record.tracking_id}")
        return record

    @staticmethod
    def statistics(db: Session) -> DeliveryStatistics:
        records = db.query(DeliveryRecord).all()
        email = [r for r in records if not is_courier(r)]
        return DeliveryStatistics(
            total=len(records),
            courier_deliveries=len(records) - len(email),
            email_pending=sum(1 for r in email if r.status != DeliveryStatus.DELIVERED.value),
            email_sent=sum(1 for r in email if r.status == DeliveryStatus.DELIVERED.value),
            priority_pending=sum(1 for r in records if r.is_priority and r.status != DeliveryStatus.DELIVERED.value),
        )
