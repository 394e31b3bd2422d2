"""AI verification review protocol.

Each verification record moves through

    untriaged -> auto_verified | pending_review | flagged
              -> approved | rejected | re_upload_requested

and every step writes exactly one audit log row. The per-record trail is
not stored on the record: it is read back from the audit log
(module=verification, resource_id=<verification id>), so the two can never
drift apart. The protocol also owns the linked Application transition, so a
review and the status change it implies are validated together and the
caller gets both back in one ReviewOutcome.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..confidence import ConfidenceThresholds, VerificationBand, classify
from ..config import Settings, get_settings
from ..database import check_version, flush
from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..models.application import Application, ApplicationStatus
from ..models.audit import AuditAction, AuditLogEntry, AuditModule
from ..models.user import Actor
from ..models.verification import (
    AIVerification,
    OverrideDecision,
    RejectionReason,
    REJECTION_REASON_LABELS,
    VerificationAuditAction,
)
from ..rbac import ADMIN_REQUIRED_MESSAGE, Action, Resource, RBACEvaluator, default_evaluator
from .applications import ApplicationWorkflowService
from .audit import AuditService

logger = logging.getLogger(__name__)


class VerificationState(str, Enum):
    UNTRIAGED = "untriaged"
    AUTO_VERIFIED = "auto_verified"
    PENDING_REVIEW = "pending_review"
    FLAGGED = "flagged"
    APPROVED = "approved"
    REJECTED = "rejected"
    RE_UPLOAD_REQUESTED = "re_upload_requested"


def verification_state(verification: AIVerification) -> VerificationState:
    if verification.band is None:
        return VerificationState.UNTRIAGED
    if verification.re_upload_requested:
        return VerificationState.RE_UPLOAD_REQUESTED
    if verification.reviewed_by_staff:
        return VerificationState.APPROVED if verification.verified_by_ai else VerificationState.REJECTED
    if verification.verified_by_ai:
        return VerificationState.AUTO_VERIFIED
    if verification.flagged:
        return VerificationState.FLAGGED
    return VerificationState.PENDING_REVIEW


def original_decision(verification: AIVerification) -> str:
    """The decision standing before an override: approved, rejected or pending."""
    if verification.verified_by_ai:
        return "approved"
    if verification.reviewed_by_staff:
        return "rejected"
    return "pending"


@dataclass(frozen=True)
class VerificationAudit:
    action: VerificationAuditAction
    performed_by: str
    performed_by_id: str
    performed_by_role: str
    timestamp: datetime
    notes: Optional[str] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_log_entry(cls, entry: AuditLogEntry) -> "VerificationAudit":
        metadata = dict(entry.metadata_json or {})
        return cls(
            action=VerificationAuditAction(metadata["trail_action"]),
            performed_by=entry.performed_by_user_name,
            performed_by_id=entry.performed_by_user_id,
            performed_by_role=entry.performed_by_user_role,
            timestamp=entry.timestamp,
            notes=entry.notes,
            reason=entry.reason,
            metadata=metadata,
        )


@dataclass
class VerificationFlags:
    verified_by_ai: bool = False
    reviewed_by_staff: bool = False
    flagged: bool = False
    re_upload_requested: bool = False

    @classmethod
    def of(cls, verification: AIVerification) -> "VerificationFlags":
        return cls(
            verified_by_ai=bool(verification.verified_by_ai),
            reviewed_by_staff=bool(verification.reviewed_by_staff),
            flagged=bool(verification.flagged),
            re_upload_requested=bool(verification.re_upload_requested),
        )

    def apply(self, action: VerificationAuditAction, decision: Optional[str] = None) -> None:
        if action == VerificationAuditAction.AI_OVERRIDE:
            action = (
                VerificationAuditAction.APPROVED
                if decision == OverrideDecision.APPROVED.value
                else VerificationAuditAction.REJECTED
            )

        if action == VerificationAuditAction.AUTO_VERIFIED:
            self.verified_by_ai, self.flagged, self.reviewed_by_staff, self.re_upload_requested = True, False, False, False
        elif action == VerificationAuditAction.PENDING_REVIEW:
            # flagged is sticky across re-scores
            self.verified_by_ai, self.reviewed_by_staff, self.re_upload_requested = False, False, False
        elif action == VerificationAuditAction.FLAGGED:
            self.verified_by_ai, self.flagged, self.reviewed_by_staff, self.re_upload_requested = False, True, False, False
        elif action == VerificationAuditAction.APPROVED:
            self.verified_by_ai, self.flagged, self.reviewed_by_staff, self.re_upload_requested = True, False, True, False
        elif action == VerificationAuditAction.REJECTED:
            self.verified_by_ai, self.flagged, self.reviewed_by_staff, self.re_upload_requested = False, True, True, False
        elif action == VerificationAuditAction.RE_UPLOAD_REQUESTED:
            self.re_upload_requested = True

    def write_to(self, verification: AIVerification) -> None:
        verification.verified_by_ai = self.verified_by_ai
        verification.reviewed_by_staff = self.reviewed_by_staff
        verification.flagged = self.flagged
        verification.re_upload_requested = self.re_upload_requested


def replay_verification_state(trail: Iterable[VerificationAudit]) -> VerificationFlags:
    """Fold a trail, oldest first, back into the record's review flags."""
    flags = VerificationFlags()
    for item in trail:
        flags.apply(item.action, item.metadata.get("decision"))
    return flags


@dataclass(frozen=True)
class LinkedTransition:
    """What the review did to the owning application.

    outcome is "applied", "unchanged" (already there) or "deferred" (the
    caller's role may not make this change; an admin must apply it).
    """

    from_status: str
    to_status: str
    outcome: str
    blocked_reason: Optional[str] = None

    def as_metadata(self) -> Dict[str, Any]:
        return {
            "from": self.from_status,
            "to": self.to_status,
            "outcome": self.outcome,
            "blocked_reason": self.blocked_reason,
        }


@dataclass
class ReviewOutcome:
    verification: AIVerification
    audit_entry: Optional[AuditLogEntry]
    application: Application
    application_transition: Optional[LinkedTransition] = None

    @property
    def deferred_transition(self) -> bool:
        return self.application_transition is not None and self.application_transition.outcome == "deferred"


@dataclass(frozen=True)
class AIMetrics:
    total_verifications: int
    auto_verified_count: int
    manual_review_count: int
    flagged_count: int
    human_override_count: int
    auto_verification_success_rate: float
    human_override_rate: float
    average_confidence: float
    false_positive_rate: float
    false_negative_rate: float


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


class VerificationReviewService:
    def __init__(
        self,
        rbac: RBACEvaluator = default_evaluator,
        workflow: Optional[ApplicationWorkflowService] = None,
        thresholds: Optional[ConfidenceThresholds] = None,
        settings: Optional[Settings] = None,
    ):
        self.rbac = rbac
        self.settings = settings or get_settings()
        self.workflow = workflow or ApplicationWorkflowService(rbac=rbac, settings=self.settings)
        self.thresholds = thresholds or ConfidenceThresholds.from_settings(self.settings)

    @staticmethod
    def get_verification(db: Session, verification_id: int) -> AIVerification:
        verification = db.query(AIVerification).filter(AIVerification.id == verification_id).first()
        if not verification:
            raise NotFoundError(f"Verification {verification_id} not found")
        return verification

    def _load(self, db: Session, verification_id: int, expected_version: Optional[int]) -> AIVerification:
        verification = self.get_verification(db, verification_id)
        check_version(verification, expected_version)
        return verification

    @staticmethod
    def _require_triaged(verification: AIVerification) -> None:
        if verification.band is None:
            raise ValidationError(f"Verification {verification.id} has not been triaged yet.")

    @staticmethod
    def _require_open(verification: AIVerification) -> None:
        if verification.is_terminal_for_staff:
            raise ValidationError(
                f"Verification {verification.id} has already been reviewed. "
                f"Only an admin override can change the decision."
            )

    def _plan_linked_transition(
        self,
        db: Session,
        actor: Actor,
        application: Application,
        target: ApplicationStatus,
        rejection_reason: Optional[str] = None,
    ) -> LinkedTransition:
        """Validate the application change a review implies, without mutating anything.

        Refusals other than the caller's role raise. A role-only refusal is
        returned as deferred so the review itself can still be recorded.
        """
        current = application.status
        if current == target.value:
            return LinkedTransition(current, target.value, "unchanged")
        if target == ApplicationStatus.VERIFIED and current in (
            ApplicationStatus.APPROVED.value,
            ApplicationStatus.COMPLETED.value,
        ):
            return LinkedTransition(current, target.value, "unchanged")

        context = self.workflow.build_context(
            db,
            application,
            actor,
            has_rejection_reason=bool(rejection_reason),
            document_verified=True if target == ApplicationStatus.VERIFIED else None,
        )
        validation = self.workflow.engine.validate_transition(current, target, context)
        if validation.is_valid:
            return LinkedTransition(current, target.value, "applied")

        rule = self.workflow.engine.find_rule(ApplicationStatus(current), target)
        if rule is not None and not validation.missing_requirements:
            logger.info(
                f"Application {application.id} transition {current} -> {target.value} deferred: "
                f"{validation.blocked_reason}"
            )
            return LinkedTransition(current, target.value, "deferred", validation.blocked_reason)

        logger.warning(
            f"Review refused, application {application.id} cannot move {current} -> {target.value}: "
            f"{validation.blocked_reason}",
            extra={"application_id": application.id, "user_id": actor.user_id},
        )
        validation.raise_for_failure()

    @staticmethod
    def _apply_linked_transition(
        application: Application, linked: LinkedTransition, rejection_reason: Optional[str] = None
    ) -> None:
        if linked.outcome == "applied":
            ApplicationWorkflowService.apply_status(application, ApplicationStatus(linked.to_status), rejection_reason)

    def _record(
        self,
        db: Session,
        actor: Actor,
        audit_action: AuditAction,
        trail_action: VerificationAuditAction,
        verification: AIVerification,
        previous_state: VerificationState,
        linked: Optional[LinkedTransition],
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        original_ai_confidence: Optional[float] = None,
    ) -> Optional[AuditLogEntry]:
        metadata = dict(metadata or {})
        metadata["trail_action"] = trail_action.value
        if linked is not None:
            metadata["application_transition"] = linked.as_metadata()
        return AuditService.log_verification_action(
            db,
            actor,
            audit_action,
            verification.id,
            verification.application_id,
            previous_state=previous_state.value,
            new_state=verification_state(verification).value,
            reason=reason,
            notes=notes,
            metadata=metadata,
            original_ai_confidence=original_ai_confidence,
        )

    def ingest(
        self,
        db: Session,
        actor: Optional[Actor],
        application_id: int,
        document_type: str,
        overall_confidence: float,
        extracted_fields: Optional[List[Dict[str, Any]]] = None,
        document_url: Optional[str] = None,
    ) -> ReviewOutcome:
        """Store a scored document from the OCR service and triage it."""
        self.rbac.require(actor, Action.APPROVE, Resource.VERIFICATION)
        classify(overall_confidence, self.thresholds)
        application = self.workflow.get_application(db, application_id)

        verification = AIVerification(
            application_id=application.id,
            document_type=document_type,
            document_url=document_url,
            extracted_fields=extracted_fields or [],
            overall_confidence=overall_confidence,
            verified_by_ai=False,
            reviewed_by_staff=False,
            flagged=False,
            re_upload_requested=False,
        )
        db.add(verification)
        flush(db)
        AuditService.log_verification_action(
            db, actor, AuditAction.DOCUMENT_UPLOADED, verification.id, application.id,
            new_state=VerificationState.UNTRIAGED.value,
            metadata={"document_type": document_type},
        )
        return self.triage(db, actor, verification.id)

    def resubmit(
        self,
        db: Session,
        actor: Optional[Actor],
        verification_id: int,
        overall_confidence: float,
        extracted_fields: Optional[List[Dict[str, Any]]] = None,
        document_url: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> ReviewOutcome:
        """Store the re-uploaded document's new OCR score and triage it again."""
        self.rbac.require(actor, Action.APPROVE, Resource.VERIFICATION)
        classify(overall_confidence, self.thresholds)
        verification = self._load(db, verification_id, expected_version)
        if not verification.re_upload_requested:
            raise ValidationError(f"No re-upload was requested for verification {verification.id}.")

        verification.overall_confidence = overall_confidence
        if extracted_fields is not None:
            verification.extracted_fields = extracted_fields
        if document_url is not None:
            verification.document_url = document_url
        flush(db)
        AuditService.log_verification_action(
            db, actor, AuditAction.DOCUMENT_UPLOADED, verification.id, verification.application_id,
            previous_state=VerificationState.RE_UPLOAD_REQUESTED.value,
            new_state=VerificationState.RE_UPLOAD_REQUESTED.value,
            metadata={"document_type": verification.document_type, "resubmission": True},
        )
        return self.triage(db, actor, verification.id)

    def triage(
        self,
        db: Session,
        actor: Optional[Actor],
        verification_id: int,
        expected_version: Optional[int] = None,
    ) -> ReviewOutcome:
        """Classify the stored AI score and set the record's band.

        Runs on fresh records and again after a re-upload. A record that has
        been flagged stays in the flagged band whatever it scores later; only
        a staff decision clears it.
        """
        self.rbac.require(actor, Action.APPROVE, Resource.VERIFICATION)
        verification = self._load(db, verification_id, expected_version)

        previous_state = verification_state(verification)
        if previous_state not in (VerificationState.UNTRIAGED, VerificationState.RE_UPLOAD_REQUESTED):
            raise ValidationError(f"Verification {verification.id} has already been triaged.")

        confidence = verification.overall_confidence
        score_band = classify(confidence, self.thresholds)
        band = VerificationBand.FLAGGED if verification.flagged else score_band

        if band == VerificationBand.AUTO_VERIFIED:
            trail_action = VerificationAuditAction.AUTO_VERIFIED
        elif band == VerificationBand.MANUAL_REVIEW:
            trail_action = VerificationAuditAction.PENDING_REVIEW
        else:
            trail_action = VerificationAuditAction.FLAGGED

        application = self.workflow.get_application(db, verification.application_id)
        linked = None
        if trail_action == VerificationAuditAction.AUTO_VERIFIED and application.status == ApplicationStatus.PENDING.value:
            linked = self._plan_linked_transition(db, actor, application, ApplicationStatus.VERIFIED)

        verification.band = band.value
        flags = VerificationFlags.of(verification)
        flags.apply(trail_action)
        flags.write_to(verification)
        verification.rejection_reason = None
        verification.reviewer_notes = None
        verification.reviewed_by = None
        verification.reviewed_at = None
        if linked is not None:
            self._apply_linked_transition(application, linked)

        entry = self._record(
            db, actor, AuditAction.AI_VERIFICATION_COMPLETED, trail_action, verification, previous_state, linked,
            metadata={"band": band.value, "score_band": score_band.value, "confidence": confidence},
        )
        flush(db)
        logger.info(f"Verification {verification.id} triaged as {band.value} ({confidence:.2f})")
        return ReviewOutcome(verification, entry, application, linked)

    def approve(
        self,
        db: Session,
        actor: Optional[Actor],
        verification_id: int,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> ReviewOutcome:
        self.rbac.require(actor, Action.APPROVE, Resource.VERIFICATION)
        verification = self._load(db, verification_id, expected_version)
        self._require_triaged(verification)
        self._require_open(verification)

        application = self.workflow.get_application(db, verification.application_id)
        linked = self._plan_linked_transition(db, actor, application, ApplicationStatus.VERIFIED)

        previous_state = verification_state(verification)
        self._mark_reviewed(verification, actor, VerificationAuditAction.APPROVED, notes)
        self._apply_linked_transition(application, linked)

        entry = self._record(
            db, actor, AuditAction.DOCUMENT_VERIFIED, VerificationAuditAction.APPROVED,
            verification, previous_state, linked, notes=notes,
        )
        flush(db)
        logger.info(f"Verification {verification.id} approved by {actor.user_id}")
        return ReviewOutcome(verification, entry, application, linked)

    def reject(
        self,
        db: Session,
        actor: Optional[Actor],
        verification_id: int,
        reason,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> ReviewOutcome:
        self.rbac.require(actor, Action.REJECT, Resource.VERIFICATION)
        if not reason:
            raise ValidationError("A rejection reason is required.")
        try:
            reason = RejectionReason(reason)
        except ValueError:
            allowed = ", ".join(r.value for r in RejectionReason)
            raise ValidationError(f"Rejection reason must be one of: {allowed}.")

        verification = self._load(db, verification_id, expected_version)
        self._require_triaged(verification)
        self._require_open(verification)

        label = REJECTION_REASON_LABELS[reason]
        application = self.workflow.get_application(db, verification.application_id)
        linked = self._plan_linked_transition(db, actor, application, ApplicationStatus.REJECTED, label)

        previous_state = verification_state(verification)
        self._mark_reviewed(verification, actor, VerificationAuditAction.REJECTED, notes)
        verification.rejection_reason = reason.value
        self._apply_linked_transition(application, linked, label)

        entry = self._record(
            db, actor, AuditAction.DOCUMENT_REJECTED, VerificationAuditAction.REJECTED,
            verification, previous_state, linked, reason=reason.value, notes=notes,
        )
        flush(db)
        logger.info(f"Verification {verification.id} rejected ({reason.value}) by {actor.user_id}")
        return ReviewOutcome(verification, entry, application, linked)

    def request_reupload(
        self,
        db: Session,
        actor: Optional[Actor],
        verification_id: int,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> ReviewOutcome:
        self.rbac.require(actor, Action.REJECT, Resource.VERIFICATION)
        verification = self._load(db, verification_id, expected_version)
        self._require_triaged(verification)
        if verification.re_upload_requested:
            raise ValidationError(f"A re-upload has already been requested for verification {verification.id}.")
        self._require_open(verification)

        application = self.workflow.get_application(db, verification.application_id)
        linked = self._plan_linked_transition(db, actor, application, ApplicationStatus.PENDING)

        previous_state = verification_state(verification)
        verification.re_upload_requested = True
        if notes:
            verification.reviewer_notes = notes
        self._apply_linked_transition(application, linked)

        entry = self._record(
            db, actor, AuditAction.DOCUMENT_REUPLOAD_REQUESTED, VerificationAuditAction.RE_UPLOAD_REQUESTED,
            verification, previous_state, linked, notes=notes,
        )
        flush(db)
        logger.info(f"Re-upload requested for verification {verification.id} by {actor.user_id}")
        return ReviewOutcome(verification, entry, application, linked)

    def override(
        self,
        db: Session,
        actor: Optional[Actor],
        verification_id: int,
        decision,
        justification: str,
        expected_version: Optional[int] = None,
    ) -> ReviewOutcome:
        """Admin-only replacement of an AI or staff decision, with a written justification."""
        self.rbac.require(actor, Action.OVERRIDE, Resource.VERIFICATION)
        if not actor.is_admin:
            raise PermissionDeniedError(ADMIN_REQUIRED_MESSAGE, action=Action.OVERRIDE.value, resource=Resource.VERIFICATION.value)

        try:
            decision = OverrideDecision(decision)
        except ValueError:
            raise ValidationError("Override decision must be 'approved' or 'rejected'.")

        justification = (justification or "").strip()
        minimum = self.settings.override_min_justification_length
        if len(justification) < minimum:
            raise ValidationError(
                f"Override justification must be at least {minimum} characters "
                f"(got {len(justification)})."
            )

        verification = self._load(db, verification_id, expected_version)
        self._require_triaged(verification)

        target = ApplicationStatus.VERIFIED if decision == OverrideDecision.APPROVED else ApplicationStatus.REJECTED
        reason = justification if decision == OverrideDecision.REJECTED else None
        application = self.workflow.get_application(db, verification.application_id)
        linked = self._plan_linked_transition(db, actor, application, target, reason)

        previous_state = verification_state(verification)
        previous_decision = original_decision(verification)
        trail_equivalent = (
            VerificationAuditAction.APPROVED if decision == OverrideDecision.APPROVED else VerificationAuditAction.REJECTED
        )
        self._mark_reviewed(verification, actor, trail_equivalent, justification)
        self._apply_linked_transition(application, linked, reason)

        entry = self._record(
            db, actor, AuditAction.AI_OVERRIDE, VerificationAuditAction.AI_OVERRIDE,
            verification, previous_state, linked,
            reason=justification,
            metadata={"decision": decision.value, "original_decision": previous_decision},
            original_ai_confidence=verification.overall_confidence,
        )
        flush(db)
        logger.info(
            f"Verification {verification.id} overridden to {decision.value} by admin {actor.user_id} "
            f"(was {previous_decision})"
        )
        return ReviewOutcome(verification, entry, application, linked)

    @staticmethod
    def _mark_reviewed(
        verification: AIVerification, actor: Actor, action: VerificationAuditAction, notes: Optional[str]
    ) -> None:
        flags = VerificationFlags.of(verification)
        flags.apply(action)
        flags.write_to(verification)
        verification.rejection_reason = None
        verification.reviewer_notes = notes
        verification.reviewed_by = actor.user_name
        verification.reviewed_at = datetime.utcnow()

    @staticmethod
    def audit_trail(db: Session, verification_id: int) -> List[VerificationAudit]:
        """The record's review history, oldest first."""
        entries = (
            db.query(AuditLogEntry)
            .filter(
                AuditLogEntry.module == AuditModule.VERIFICATION.value,
                AuditLogEntry.resource_id == str(verification_id),
            )
            .order_by(AuditLogEntry.timestamp.asc(), AuditLogEntry.id.asc())
            .all()
        )
        return [
            VerificationAudit.from_log_entry(e)
            for e in entries
            if e.metadata_json and "trail_action" in e.metadata_json
        ]

    def metrics(self, db: Session) -> AIMetrics:
        verifications = db.query(AIVerification).filter(AIVerification.band.isnot(None)).all()
        overrides = (
            db.query(AuditLogEntry)
            .filter(
                AuditLogEntry.module == AuditModule.VERIFICATION.value,
                AuditLogEntry.action == AuditAction.AI_OVERRIDE.value,
            )
            .all()
        )
        total = len(verifications)
        by_band = {band: [v for v in verifications if v.band == band.value] for band in VerificationBand}
        auto = by_band[VerificationBand.AUTO_VERIFIED]
        flagged = by_band[VerificationBand.FLAGGED]

        # auto-verified but later rejected, and flagged but later approved
        false_positives = sum(1 for v in auto if v.reviewed_by_staff and not v.verified_by_ai)
        false_negatives = sum(1 for v in flagged if v.reviewed_by_staff and v.verified_by_ai)
        overridden_ids = {e.resource_id for e in overrides}

        return AIMetrics(
            total_verifications=total,
            auto_verified_count=len(auto),
            manual_review_count=len(by_band[VerificationBand.MANUAL_REVIEW]),
            flagged_count=len(flagged),
            human_override_count=len(overrides),
            auto_verification_success_rate=_percent(len(auto) - false_positives, len(auto)),
            human_override_rate=_percent(len(overridden_ids), total),
            average_confidence=(
                round(sum(v.overall_confidence for v in verifications) / total, 4) if total else 0.0
            ),
            false_positive_rate=_percent(false_positives, len(auto)),
            false_negative_rate=_percent(false_negatives, len(flagged)),
        )
