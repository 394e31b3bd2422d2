import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..database import check_version, flush
from ..errors import NotFoundError, ValidationError
from ..models.addon import Addon, AddonStatus, AddonType, ADDON_STATUS_TRANSITIONS
from ..models.application import Application
from ..models.audit import AuditAction
from ..models.user import Actor
from ..rbac import Action, Resource, RBACEvaluator, default_evaluator
from ..state_machine import validate_status_transition
from .audit import AuditService

logger = logging.getLogger(__name__)


ADDON_TYPE_LABELS = {
    AddonType.TDAC: "TDAC",
    AddonType.INSURANCE: "Travel Insurance",
    AddonType.TOWING: "Towing Service",
    AddonType.SIM_CARD: "SIM Card",
}

if set(AddonType) - set(ADDON_TYPE_LABELS):
    raise RuntimeError("Every add-on type needs a label")


class AddonService:
    def __init__(self, rbac: RBACEvaluator = default_evaluator):
        self.rbac = rbac

    @staticmethod
    def get_addon(db: Session, addon_id: int) -> Addon:
        addon = db.query(Addon).filter(Addon.id == addon_id).first()
        if not addon:
            raise NotFoundError(f"Add-on {addon_id} not found")
        return addon

    @staticmethod
    def list_addons(db: Session, application_id: Optional[int] = None, status: Optional[str] = None) -> List[Addon]:
        query = db.query(Addon)
        if application_id:
            query = query.filter(Addon.application_id == application_id)
        if status:
            query = query.filter(Addon.status == status)
        return query.order_by(Addon.created_at.desc(), Addon.id.desc()).all()

    def add_addon(
        self,
        db: Session,
        actor: Optional[Actor],
        application_id: int,
        addon_type,
        vendor_name: str,
        cost_cents: int,
    ) -> Addon:
        self.rbac.require(actor, Action.UPDATE, Resource.ADDONS)

        try:
            addon_type = AddonType(addon_type)
        except ValueError:
            raise ValidationError(f"Unknown add-on type: {addon_type!r}")
        if not vendor_name or not vendor_name.strip():
            raise ValidationError("Vendor name is required.")
        if cost_cents < 0:
            raise ValidationError("Add-on cost cannot be negative.")

        application = db.query(Application).filter(Application.id == application_id).first()
        if not application:
            raise NotFoundError(f"Application {application_id} not found")

        addon = Addon(
            application_id=application.id,
            type=addon_type.value,
            vendor_name=vendor_name.strip(),
            cost_cents=cost_cents,
            status=AddonStatus.PENDING.value,
        )
        db.add(addon)
        flush(db)

        AuditService.log_addon_action(
            db, actor, AuditAction.ADDON_ADDED, addon.id, application.id,
            new_status=addon.status,
            metadata={"type": addon_type.value, "vendor_name": addon.vendor_name, "cost_cents": cost_cents},
        )
        logger.info(f"Added {addon_type.value} add-on {addon.id} to application {application.id}")
        return addon

    def update_status(
        self,
        db: Session,
        actor: Optional[Actor],
        addon_id: int,
        to_status,
        tracking_number: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Addon:
        self.rbac.require(actor, Action.UPDATE, Resource.ADDONS)

        try:
            target = AddonStatus(to_status)
        except ValueError:
            raise ValidationError(f"Unknown add-on status: {to_status!r}")

        addon = self.get_addon(db, addon_id)
        check_version(addon, expected_version)
        validate_status_transition(ADDON_STATUS_TRANSITIONS, addon.status, target, "Add-on")

        previous = addon.status
        addon.status = target.value
        if tracking_number:
            addon.tracking_number = tracking_number

        AuditService.log_addon_action(
            db,
            actor,
            AuditAction.ADDON_CANCELLED if target == AddonStatus.CANCELLED else AuditAction.STATUS_CHANGED,
            addon.id,
            addon.application_id,
            previous_status=previous,
            new_status=target.value,
        )
        flush(db)
        logger.info(f"Add-on {addon.id} moved {previous} -> {target.value}")
        return addon
