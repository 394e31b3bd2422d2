from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import database
from ..database import get_db
from ..models.application import Application
from ..models.user import Actor
from ..rbac import Action, Resource, default_evaluator
from ..schemas.application import (
    AllowedTransitionsResponse,
    ApplicationCreate,
    ApplicationResponse,
    ApplicationTransitionRequest,
    WorkflowValidationResponse,
)
from ..schemas.audit import AuditLogResponse
from ..services.applications import ApplicationWorkflowService
from ..services.audit import AuditService
from ..state_machine import get_status_label, get_workflow_stage
from .auth import require_actor

router = APIRouter(prefix="/api/applications", tags=["applications"])


def application_response(application: Application) -> ApplicationResponse:
    response = ApplicationResponse.model_validate(application)
    response.status_label = get_status_label(application.status)
    response.workflow_stage = get_workflow_stage(application.status)
    return response


def _validation_response(validation) -> WorkflowValidationResponse:
    return WorkflowValidationResponse(
        from_status=validation.from_status,
        to_status=validation.to_status,
        is_valid=validation.is_valid,
        blocked_reason=validation.blocked_reason,
        missing_requirements=list(validation.missing_requirements),
    )


@router.get("", response_model=List[ApplicationResponse])
def list_applications(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.APPLICATIONS)
    query = db.query(Application)
    if status_filter:
        query = query.filter(Application.status == status_filter)
    query = query.order_by(Application.submission_date.desc(), Application.id.desc())
    return [application_response(a) for a in query.offset(offset).limit(limit).all()]


@router.get("/queue", response_model=List[ApplicationResponse])
def review_queue(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.APPLICATIONS)
    return [application_response(a) for a in ApplicationWorkflowService().review_queue(db)]


@router.post("", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
def create_application(
    data: ApplicationCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    fields = data.model_dump()
    fields["vehicle_type"] = data.vehicle_type.value
    fields["delivery_option"] = data.delivery_option.value
    application = ApplicationWorkflowService().create_application(db, actor, **fields)
    database.commit(db)
    db.refresh(application)
    return application_response(application)


@router.get("/{application_id}", response_model=ApplicationResponse)
def get_application(
    application_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.APPLICATIONS)
    return application_response(ApplicationWorkflowService.get_application(db, application_id))


@router.get("/{application_id}/transitions", response_model=AllowedTransitionsResponse)
def get_allowed_transitions(
    application_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.APPLICATIONS)
    service = ApplicationWorkflowService()
    application = service.get_application(db, application_id)
    return AllowedTransitionsResponse(
        current_status=application.status,
        current_label=get_status_label(application.status),
        transitions=[_validation_response(v) for v in service.allowed_transitions(db, actor, application)],
    )


@router.post("/{application_id}/transitions/validate", response_model=WorkflowValidationResponse)
def validate_transition(
    application_id: int,
    request: ApplicationTransitionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.APPLICATIONS)
    service = ApplicationWorkflowService()
    application = service.get_application(db, application_id)
    return _validation_response(
        service.validate(db, actor, application, request.to_status, request.rejection_reason)
    )


@router.post("/{application_id}/transition", response_model=ApplicationResponse)
def transition_application(
    application_id: int,
    request: ApplicationTransitionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    outcome = ApplicationWorkflowService().transition(
        db,
        actor,
        application_id,
        request.to_status,
        rejection_reason=request.rejection_reason,
        notes=request.notes,
        expected_version=request.expected_version,
    )
    database.commit(db)
    db.refresh(outcome.application)
    return application_response(outcome.application)


@router.get("/{application_id}/history", response_model=List[AuditLogResponse])
def get_application_history(
    application_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.LOGS)
    ApplicationWorkflowService.get_application(db, application_id)
    return AuditService.application_history(db, application_id)
