import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import check_version, flush
from ..errors import NotFoundError, ValidationError
from ..models.application import Application, ApplicationStatus, PaymentStatus
from ..models.audit import AuditAction, AuditLogEntry
from ..models.delivery import DeliveryRecord
from ..models.payment import Payment
from ..models.user import Actor
from ..models.verification import AIVerification
from ..rbac import Action, Resource, RBACEvaluator, default_evaluator
from ..state_machine import WorkflowContext, WorkflowEngine, WorkflowValidation, default_engine
from .audit import AuditService
from .delivery import is_delivery_completed

logger = logging.getLogger(__name__)


TRANSITION_AUDIT_ACTIONS = {
    ApplicationStatus.APPROVED: AuditAction.APPLICATION_APPROVED,
    ApplicationStatus.REJECTED: AuditAction.APPLICATION_REJECTED,
    ApplicationStatus.COMPLETED: AuditAction.APPLICATION_COMPLETED,
}

# Permission checked before the workflow rules; staff verify through document review
TRANSITION_PERMISSIONS = {
    ApplicationStatus.VERIFIED: (Action.APPROVE, Resource.VERIFICATION),
    ApplicationStatus.APPROVED: (Action.APPROVE, Resource.APPLICATIONS),
    ApplicationStatus.REJECTED: (Action.REJECT, Resource.APPLICATIONS),
}


@dataclass
class TransitionOutcome:
    application: Application
    previous_status: str
    new_status: str
    audit_entry: Optional[AuditLogEntry]


def is_document_verified(verification: AIVerification) -> bool:
    return bool(verification.verified_by_ai) and not verification.flagged and not verification.re_upload_requested


class ApplicationWorkflowService:
    """Drives Application status changes through the workflow engine.

    Validation never mutates; mutation and the audit entry happen together
    only after the transition passes. Nothing here commits: the caller owns
    the unit of work.
    """

    def __init__(
        self,
        rbac: RBACEvaluator = default_evaluator,
        engine: WorkflowEngine = default_engine,
        settings: Optional[Settings] = None,
    ):
        self.rbac = rbac
        self.engine = engine
        self.settings = settings or get_settings()

    @staticmethod
    def get_application(db: Session, application_id: int) -> Application:
        application = db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise NotFoundError(f"Application {application_id} not found")
        return application

    @staticmethod
    def find_by_tracking_id(db: Session, tracking_id: str) -> Application:
        application = db.query(Application).filter(Application.tracking_id == tracking_id).first()
        if not application:
            raise NotFoundError(f"Application {tracking_id} not found")
        return application

    def create_application(self, db: Session, actor: Optional[Actor], **fields) -> Application:
        if actor is not None:
            self.rbac.require(actor, Action.UPDATE, Resource.APPLICATIONS)

        travel_start: date = fields.get("travel_start")
        travel_end: date = fields.get("travel_end")
        if travel_start and travel_end and travel_end < travel_start:
            raise ValidationError("Travel end date cannot be before the start date.")

        application = Application(
            tracking_id=Application.generate_tracking_id(),
            status=ApplicationStatus.PENDING.value,
            **fields,
        )
        db.add(application)
        flush(db)

        AuditService.log_application_action(
            db, actor, AuditAction.APPLICATION_CREATED, application.id,
            new_status=application.status,
        )
        logger.info(f"Created application {application.tracking_id} (id={application.id})")
        return application

    def build_context(
        self,
        db: Session,
        application: Application,
        actor: Optional[Actor],
        has_rejection_reason: bool = False,
        document_verified: Optional[bool] = None,
    ) -> WorkflowContext:
        """Assemble the preconditions for a transition from the stored records."""
        if document_verified is None:
            verifications = (
                db.query(AIVerification).filter(AIVerification.application_id == application.id).all()
            )
            document_verified = bool(verifications) and all(is_document_verified(v) for v in verifications)

        payment_confirmed = application.payment_status == PaymentStatus.PAID.value
        if not payment_confirmed:
            payment_confirmed = (
                db.query(Payment)
                .filter(
                    Payment.application_id == application.id,
                    Payment.status == PaymentStatus.PAID.value,
                )
                .first()
                is not None
            )

        delivery = db.query(DeliveryRecord).filter(DeliveryRecord.application_id == application.id).first()

        return WorkflowContext(
            document_verified=document_verified,
            payment_confirmed=payment_confirmed,
            delivery_completed=delivery is not None and is_delivery_completed(delivery),
            has_rejection_reason=has_rejection_reason,
            user_role=actor.role if actor else None,
        )

    def validate(
        self,
        db: Session,
        actor: Optional[Actor],
        application: Application,
        to_status,
        rejection_reason: Optional[str] = None,
    ) -> WorkflowValidation:
        """Dry run: the same answer transition() would act on, with nothing written."""
        context = self.build_context(db, application, actor, has_rejection_reason=bool(rejection_reason))
        return self.engine.validate_transition(application.status, to_status, context)

    def allowed_transitions(self, db: Session, actor: Optional[Actor], application: Application) -> List[WorkflowValidation]:
        role = actor.role if actor else None
        context = self.build_context(db, application, actor)
        return [
            self.engine.validate_transition(application.status, status, context)
            for status in self.engine.get_next_allowed_statuses(application.status, role)
        ]

    @staticmethod
    def apply_status(application: Application, to_status: ApplicationStatus, rejection_reason: Optional[str] = None) -> str:
        """Mutate the record for an already-validated transition; returns the previous status."""
        previous = application.status
        application.status = to_status.value
        if to_status == ApplicationStatus.REJECTED:
            application.rejection_reason = rejection_reason
        elif previous == ApplicationStatus.REJECTED.value:
            application.rejection_reason = None
        return previous

    def transition(
        self,
        db: Session,
        actor: Optional[Actor],
        application_id: int,
        to_status,
        rejection_reason: Optional[str] = None,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> TransitionOutcome:
        try:
            target = ApplicationStatus(to_status)
        except ValueError:
            raise ValidationError(f"Unknown application status: {to_status!r}")

        action, resource = TRANSITION_PERMISSIONS.get(target, (Action.UPDATE, Resource.APPLICATIONS))
        self.rbac.require(actor, action, resource)

        application = self.get_application(db, application_id)
        check_version(application, expected_version)

        rejection_reason = rejection_reason.strip() if rejection_reason else None
        validation = self.validate(db, actor, application, target, rejection_reason)
        if not validation.is_valid:
            logger.warning(
                f"Refused application transition {validation.from_status} -> {validation.to_status}: "
                f"{validation.blocked_reason}",
                extra={"application_id": application.id, "user_id": actor.user_id},
            )
            validation.raise_for_failure()

        previous = self.apply_status(application, target, rejection_reason)
        entry = AuditService.log_application_action(
            db,
            actor,
            TRANSITION_AUDIT_ACTIONS.get(target, AuditAction.STATUS_CHANGED),
            application.id,
            previous_status=previous,
            new_status=target.value,
            reason=rejection_reason,
            notes=notes,
        )
        flush(db)

        logger.info(
            f"Application {application.tracking_id} moved {previous} -> {target.value} by {actor.user_id}"
        )
        return TransitionOutcome(application, previous, target.value, entry)

    def review_queue(self, db: Session) -> List[Application]:
        """Pending applications in review order.

        Once the backlog exceeds the configured threshold, paid applications
        jump the queue; otherwise it is first come, first served.
        """
        pending = (
            db.query(Application)
            .filter(Application.status == ApplicationStatus.PENDING.value)
            .order_by(Application.submission_date.asc(), Application.id.asc())
            .all()
        )
        if len(pending) <= self.settings.queue_priority_threshold:
            return pending
        return sorted(pending, key=lambda a: a.payment_status != PaymentStatus.PAID.value)
