from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import database
from ..database import get_db
from ..models.user import Actor
from ..rbac import Action, Resource, default_evaluator
from ..schemas.addon import AddonCreate, AddonResponse, AddonStatusUpdate
from ..services.addons import AddonService
from .auth import require_actor

router = APIRouter(prefix="/api/addons", tags=["addons"])


@router.get("", response_model=List[AddonResponse])
def list_addons(
    application_id: Optional[int] = Query(None, description="Filter by application ID"),
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.ADDONS)
    return AddonService.list_addons(db, application_id=application_id, status=status_filter)


@router.post("", response_model=AddonResponse, status_code=status.HTTP_201_CREATED)
def add_addon(
    data: AddonCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    addon = AddonService().add_addon(db, actor, data.application_id, data.type, data.vendor_name, data.cost_cents)
    database.commit(db)
    db.refresh(addon)
    return addon


@router.post("/{addon_id}/status", response_model=AddonResponse)
def update_addon_status(
    addon_id: int,
    request: AddonStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    addon = AddonService().update_status(
        db,
        actor,
        addon_id,
        request.to_status,
        tracking_number=request.tracking_number,
        expected_version=request.expected_version,
    )
    database.commit(db)
    db.refresh(addon)
    return addon
