from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import database
from ..confidence import VerificationBand, band_label
from ..database import get_db
from ..models.user import Actor
from ..models.verification import AIVerification
from ..rbac import Action, Resource, default_evaluator
from ..schemas.verification import (
    AIMetricsResponse,
    ApproveRequest,
    OverrideRequest,
    RejectRequest,
    ReUploadRequest,
    ReviewOutcomeResponse,
    TriageRequest,
    VerificationAuditResponse,
    VerificationIngestRequest,
    VerificationResubmitRequest,
    VerificationResponse,
)
from ..services.verification import ReviewOutcome, VerificationReviewService, verification_state
from .applications import application_response
from .auth import require_actor

router = APIRouter(prefix="/api/verifications", tags=["verifications"])


def _to_response(verification: AIVerification) -> VerificationResponse:
    response = VerificationResponse.model_validate(verification)
    response.band_label = band_label(VerificationBand(verification.band)) if verification.band else None
    response.state = verification_state(verification).value
    return response


def _outcome_response(db: Session, outcome: ReviewOutcome) -> ReviewOutcomeResponse:
    database.commit(db)
    db.refresh(outcome.verification)
    db.refresh(outcome.application)
    transition = outcome.application_transition
    return ReviewOutcomeResponse(
        verification=_to_response(outcome.verification),
        application=application_response(outcome.application),
        application_transition=(
            {
                "from_status": transition.from_status,
                "to_status": transition.to_status,
                "outcome": transition.outcome,
                "blocked_reason": transition.blocked_reason,
            }
            if transition
            else None
        ),
        deferred_transition=outcome.deferred_transition,
        audit_entry_id=outcome.audit_entry.id if outcome.audit_entry else None,
    )


@router.get("", response_model=List[VerificationResponse])
def list_verifications(
    application_id: Optional[int] = Query(None, description="Filter by application"),
    band: Optional[VerificationBand] = Query(None, description="Filter by band"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.VERIFICATION)
    query = db.query(AIVerification)
    if application_id:
        query = query.filter(AIVerification.application_id == application_id)
    if band:
        query = query.filter(AIVerification.band == band.value)
    query = query.order_by(AIVerification.created_at.desc(), AIVerification.id.desc())
    return [_to_response(v) for v in query.all()]


@router.get("/metrics", response_model=AIMetricsResponse)
def get_metrics(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.ANALYTICS)
    return AIMetricsResponse.model_validate(VerificationReviewService().metrics(db))


@router.post("", response_model=ReviewOutcomeResponse, status_code=status.HTTP_201_CREATED)
def ingest_verification(
    request: VerificationIngestRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    outcome = VerificationReviewService().ingest(
        db,
        actor,
        request.application_id,
        request.document_type.value,
        request.overall_confidence,
        extracted_fields=[f.model_dump() for f in request.extracted_fields],
        document_url=request.document_url,
    )
    return _outcome_response(db, outcome)


@router.get("/{verification_id}", response_model=VerificationResponse)
def get_verification(
    verification_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.VERIFICATION)
    return _to_response(VerificationReviewService.get_verification(db, verification_id))


@router.post("/{verification_id}/triage", response_model=ReviewOutcomeResponse)
def triage_verification(
    verification_id: int,
    request: TriageRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    outcome = VerificationReviewService().triage(
        db, actor, verification_id, expected_version=request.expected_version
    )
    return _outcome_response(db, outcome)


@router.post("/{verification_id}/document", response_model=ReviewOutcomeResponse)
def resubmit_document(
    verification_id: int,
    request: VerificationResubmitRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    outcome = VerificationReviewService().resubmit(
        db,
        actor,
        verification_id,
        request.overall_confidence,
        extracted_fields=[f.model_dump() for f in request.extracted_fields] if request.extracted_fields else None,
        document_url=request.document_url,
        expected_version=request.expected_version,
    )
    return _outcome_response(db, outcome)


@router.post("/{verification_id}/approve", response_model=ReviewOutcomeResponse)
def approve_verification(
    verification_id: int,
    request: ApproveRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    outcome = VerificationReviewService().approve(
        db, actor, verification_id, notes=request.notes, expected_version=request.expected_version
    )
    return _outcome_response(db, outcome)


@router.post("/{verification_id}/reject", response_model=ReviewOutcomeResponse)
def reject_verification(
    verification_id: int,
    request: RejectRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    outcome = VerificationReviewService().reject(
        db, actor, verification_id, request.reason, notes=request.notes, expected_version=request.expected_version
    )
    return _outcome_response(db, outcome)


@router.post("/{verification_id}/re-upload", response_model=ReviewOutcomeResponse)
def request_reupload(
    verification_id: int,
    request: ReUploadRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    outcome = VerificationReviewService().request_reupload(
        db, actor, verification_id, notes=request.notes, expected_version=request.expected_version
    )
    return _outcome_response(db, outcome)


@router.post("/{verification_id}/override", response_model=ReviewOutcomeResponse)
def override_verification(
    verification_id: int,
    request: OverrideRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    outcome = VerificationReviewService().override(
        db,
        actor,
        verification_id,
        request.decision,
        request.justification,
        expected_version=request.expected_version,
    )
    return _outcome_response(db, outcome)


@router.get("/{verification_id}/trail", response_model=List[VerificationAuditResponse])
def get_audit_trail(
    verification_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.VERIFICATION)
    VerificationReviewService.get_verification(db, verification_id)
    return [
        VerificationAuditResponse(
            action=item.action.value,
            performed_by=item.performed_by,
            performed_by_id=item.performed_by_id,
            performed_by_role=item.performed_by_role,
            timestamp=item.timestamp,
            notes=item.notes,
            reason=item.reason,
            metadata=item.metadata,
        )
        for item in VerificationReviewService.audit_trail(db, verification_id)
    ]
