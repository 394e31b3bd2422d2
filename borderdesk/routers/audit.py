from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.audit import AuditAction, AuditModule
from ..models.user import Actor
from ..rbac import Action, Resource, default_evaluator
from ..schemas.audit import AuditLogResponse
from ..services.audit import AuditLogFilter, AuditService
from .auth import require_actor

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=List[AuditLogResponse])
def filter_audit_log(
    module: Optional[AuditModule] = Query(None),
    action: Optional[AuditAction] = Query(None),
    user_id: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.AUDIT)
    criteria = AuditLogFilter(
        module=module,
        action=action,
        user_id=user_id,
        resource_id=resource_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return AuditService.filter(db, criteria)


@router.get("/resource/{resource_id}", response_model=List[AuditLogResponse])
def audit_by_resource(
    resource_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.AUDIT)
    return AuditService.by_resource(db, resource_id)


@router.get("/user/{user_id}", response_model=List[AuditLogResponse])
def audit_by_user(
    user_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.AUDIT)
    return AuditService.by_user(db, user_id)
