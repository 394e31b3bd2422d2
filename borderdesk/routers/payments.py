from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import database
from ..database import get_db
from ..models.user import Actor
from ..rbac import Action, Resource, default_evaluator
from ..schemas.payment import (
    PaymentCreate,
    PaymentFailRequest,
    PaymentRefundRequest,
    PaymentResponse,
    VersionedRequest,
)
from ..services.payments import PaymentService
from .auth import require_actor

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.get("", response_model=List[PaymentResponse])
def list_payments(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    application_id: Optional[int] = Query(None, description="Filter by application ID"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.PAYMENTS)
    return PaymentService.list_payments(db, status=status_filter, application_id=application_id)


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def record_payment(
    data: PaymentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    payment = PaymentService().record_payment(
        db, actor, data.application_id, data.method, amount_cents=data.amount_cents, receipt_url=data.receipt_url
    )
    database.commit(db)
    db.refresh(payment)
    return payment


@router.get("/{payment_id}", response_model=PaymentResponse)
def get_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    default_evaluator.require(actor, Action.VIEW, Resource.PAYMENTS)
    return PaymentService.get_payment(db, payment_id)


@router.post("/{payment_id}/paid", response_model=PaymentResponse)
def mark_paid(
    payment_id: int,
    request: VersionedRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    payment = PaymentService().mark_paid(db, actor, payment_id, expected_version=request.expected_version)
    database.commit(db)
    db.refresh(payment)
    return payment


@router.post("/{payment_id}/failed", response_model=PaymentResponse)
def mark_failed(
    payment_id: int,
    request: PaymentFailRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    payment = PaymentService().mark_failed(
        db, actor, payment_id, failure_message=request.failure_message, expected_version=request.expected_version
    )
    database.commit(db)
    db.refresh(payment)
    return payment


@router.post("/{payment_id}/refund", response_model=PaymentResponse)
def refund_payment(
    payment_id: int,
    request: PaymentRefundRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_actor),
):
    payment = PaymentService().refund(db, actor, payment_id, request.reason, expected_version=request.expected_version)
    database.commit(db)
    db.refresh(payment)
    return payment
