import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..database import check_version, flush
from ..errors import NotFoundError, ValidationError
from ..models.application import Application, PaymentStatus
from ..models.audit import AuditAction
from ..models.payment import Payment, PaymentMethod, PAYMENT_STATUS_TRANSITIONS
from ..models.user import Actor
from ..rbac import Action, Resource, RBACEvaluator, default_evaluator
from ..state_machine import validate_status_transition
from .audit import AuditService

logger = logging.getLogger(__name__)


class PaymentService:
    """Payment records for an application. Every status change is mirrored
    onto Application.payment_status and audited."""

    def __init__(self, rbac: RBACEvaluator = default_evaluator):
        self.rbac = rbac

    @staticmethod
    def get_payment(db: Session, payment_id: int) -> Payment:
        payment = db.query(Payment).filter(Payment.id == payment_id).first()
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    @staticmethod
    def list_payments(db: Session, status: Optional[str] = None, application_id: Optional[int] = None) -> List[Payment]:
        query = db.query(Payment)
        if status:
            query = query.filter(Payment.status == status)
        if application_id:
            query = query.filter(Payment.application_id == application_id)
        return query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()

    def record_payment(
        self,
        db: Session,
        actor: Optional[Actor],
        application_id: int,
        method,
        amount_cents: Optional[int] = None,
        receipt_url: Optional[str] = None,
    ) -> Payment:
        self.rbac.require(actor, Action.UPDATE, Resource.PAYMENTS)

        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {method!r}")

        application = db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise NotFoundError(f"Application {application_id} not found")

        amount = application.total_price_cents if amount_cents is None else amount_cents
        if amount <= 0:
            raise ValidationError("Payment amount must be positive.")

        payment = Payment(
            application_id=application.id,
            method=method.value,
            amount_cents=amount,
            status=PaymentStatus.PENDING.value,
            receipt_url=receipt_url,
        )
        db.add(payment)
        flush(db)
        AuditService.log_payment_action(
            db, actor, AuditAction.STATUS_CHANGED, payment.id, application.id,
            new_status=payment.status,
            metadata={"amount_cents": payment.amount_cents, "currency": payment.currency, "method": payment.method},
        )
        logger.info(f"Recorded {method.value} payment {payment.id} for application {application.id}")
        return payment

    def _change_status(
        self,
        db: Session,
        actor: Actor,
        payment: Payment,
        target: PaymentStatus,
        audit_action: AuditAction,
        reason: Optional[str] = None,
    ) -> Payment:
        validate_status_transition(PAYMENT_STATUS_TRANSITIONS, payment.status, target, "Payment")

        previous = payment.status
        payment.status = target.value
        application = db.query(Application).filter(Application.id == payment.application_id).first()
        if application is not None:
            application.payment_status = target.value

        AuditService.log_payment_action(
            db, actor, audit_action, payment.id, payment.application_id,
            previous_status=previous,
            new_status=target.value,
            reason=reason,
            metadata={"amount_cents": payment.amount_cents, "currency": payment.currency, "method": payment.method},
        )
        flush(db)
        logger.info(f"Payment {payment.id} moved {previous} -> {target.value}")
        return payment

    def mark_paid(
        self, db: Session, actor: Optional[Actor], payment_id: int, expected_version: Optional[int] = None
    ) -> Payment:
        self.rbac.require(actor, Action.UPDATE, Resource.PAYMENTS)
        payment = self.get_payment(db, payment_id)
        check_version(payment, expected_version)
        validate_status_transition(PAYMENT_STATUS_TRANSITIONS, payment.status, PaymentStatus.PAID, "Payment")
        payment.paid_at = datetime.utcnow()
        payment.failure_message = None
        return self._change_status(db, actor, payment, PaymentStatus.PAID, AuditAction.PAYMENT_RECEIVED)

    def mark_failed(
        self,
        db: Session,
        actor: Optional[Actor],
        payment_id: int,
        failure_message: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Payment:
        self.rbac.require(actor, Action.UPDATE, Resource.PAYMENTS)
        payment = self.get_payment(db, payment_id)
        check_version(payment, expected_version)
        validate_status_transition(PAYMENT_STATUS_TRANSITIONS, payment.status, PaymentStatus.FAILED, "Payment")
        payment.failure_message = failure_message
        return self._change_status(
            db, actor, payment, PaymentStatus.FAILED, AuditAction.PAYMENT_FAILED, reason=failure_message
        )

    def refund(
        self,
        db: Session,
        actor: Optional[Actor],
        payment_id: int,
        reason: str,
        expected_version: Optional[int] = None,
    ) -> Payment:
        self.rbac.require(actor, Action.REFUND, Resource.PAYMENTS)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A refund reason is required.")
        payment = self.get_payment(db, payment_id)
        check_version(payment, expected_version)
        validate_status_transition(PAYMENT_STATUS_TRANSITIONS, payment.status, PaymentStatus.REFUNDED, "Payment")
        payment.refund_reason = reason
        payment.refunded_at = datetime.utcnow()
        return self._change_status(db, actor, payment, PaymentStatus.REFUNDED, AuditAction.PAYMENT_REFUNDED, reason=reason)
