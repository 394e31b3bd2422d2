from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import database
from ..database import get_db
from ..models.delivery import DeliveryRecord
from ..models.user import Actor
from ..rbac import Action, Resource, default_evaluator
from ..schemas.delivery import (
    CourierTrackingRequest,
    DeliveryAdvanceRequest,
    DeliveryCreate,
    DeliveryResponse,
    DeliveryStatisticsResponse,
)
from ..services.delivery import (
    DeliveryService,
    courier_provider_label,
    courier_tracking_url,
    display_status,
    progress_percent,
)
from .auth import require_actor

router = APIRouter(prefix="/api/deliveries", tags=["deliveries"])


def _to_response(record: DeliveryRecord) -> DeliveryResponse:
    return DeliveryResponse(
        id=record.id,
        application_id=record.application_id,
        tracking_id=record.tracking_id,
        policy_number=record.policy_number,
        recipient_name=record.recipient_name,
        recipient_email=record.recipient_email,
        recipient_phone=record.recipient_phone,
        recipient_address=record.recipient_address,
        delivery_method=record.delivery_method,
        status=record.status,
        display_status=display_status(record),
        progress_percent=progress_percent(record),
        courier_provider=record.courier_provider,
        courier_provider_label=courier_provider_label(record),
        courier_tracking_number=record.courier_tracking_number,
        courier_tracking_url=courier_tracking_url(record),
        is_priority=record.is_priority,
        notes=record.notes,
        shipped_at=record.shipped_at,
        in_transit_at=record.in_transit_at,
        delivered_at=record.delivered_at,
        email_sent_at=record.email_sent_at,
        created_at=record.created_at,
        version=record.version,
    )


@router.get("", response_model=List[DeliveryResponse])
def list_deliveries(
    method: Optional[str] = Query(None, description="Filter by delivery method"),
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.TRACKING)
    query = db.query(DeliveryRecord)
    if method:
        query = query.filter(DeliveryRecord.delivery_method == method)
    if status_filter:
        query = query.filter(DeliveryRecord.status == status_filter)
    query = query.order_by(DeliveryRecord.is_priority.desc(), DeliveryRecord.created_at.asc())
    return [_to_response(r) for r in query.all()]


@router.get("/stats", response_model=DeliveryStatisticsResponse)
def delivery_statistics(
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.TRACKING)
    return DeliveryStatisticsResponse.model_validate(DeliveryService.statistics(db))


@router.get("/track/{tracking_id}", response_model=DeliveryResponse)
def track_delivery(
    tracking_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.TRACKING)
    return _to_response(DeliveryService.find_by_tracking_id(db, tracking_id))


@router.post("", response_model=DeliveryResponse, status_code=status.HTTP_201_CREATED)
def create_delivery(
    data: DeliveryCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    record = DeliveryService().create_delivery(
        db,
        actor,
        data.application_id,
        data.delivery_method,
        data.recipient_name,
        recipient_email=data.recipient_email,
        recipient_phone=data.recipient_phone,
        recipient_address=data.recipient_address,
        courier_provider=data.courier_provider,
        policy_number=data.policy_number,
        notes=data.notes,
    )
    database.commit(db)
    db.refresh(record)
    return _to_response(record)


@router.get("/{delivery_id}", response_model=DeliveryResponse)
def get_delivery(
    delivery_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.TRACKING)
    return _to_response(DeliveryService.get_delivery(db, delivery_id))


@router.post("/{delivery_id}/advance", response_model=DeliveryResponse)
def advance_delivery(
    delivery_id: int,
    request: DeliveryAdvanceRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    record = DeliveryService().advance_status(
        db,
        actor,
        delivery_id,
        to_status=request.to_status,
        notes=request.notes,
        expected_version=request.expected_version,
    )
    database.commit(db)
    db.refresh(record)
    return _to_response(record)


@router.post("/{delivery_id}/courier-tracking", response_model=DeliveryResponse)
def assign_courier_tracking(
    delivery_id: int,
    request: CourierTrackingRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    record = DeliveryService().assign_courier_tracking(
        db,
        actor,
        delivery_id,
        request.tracking_number,
        courier_provider=request.courier_provider,
        expected_version=request.expected_version,
    )
    database.commit(db)
    db.refresh(record)
    return _to_response(record)
