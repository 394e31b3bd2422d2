import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import flush
from ..errors import ValidationError
from ..models.audit import AuditLogEntry, AuditAction, AuditModule
from ..models.user import Actor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditLogFilter:
    """All supplied criteria must match; None means "no constraint"."""

    module: Optional[AuditModule] = None
    action: Optional[AuditAction] = None
    user_id: Optional[str] = None
    resource_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = None


def _enum_value(enum_cls, value) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        raise ValidationError(f"Unknown {enum_cls.__name__} value: {value!r}")


class AuditService:
    @staticmethod
    def record(
        db: Session,
        actor: Optional[Actor],
        action,
        module,
        resource_id,
        resource_type: str,
        previous_state: Optional[str] = None,
        new_state: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        application_id=None,
    ) -> Optional[AuditLogEntry]:
        action_value = _enum_value(AuditAction, action)
        module_value = _enum_value(AuditModule, module)

        if actor is None:
            logger.warning(
                "Cannot log action: no user context",
                extra={"audit_action": action_value, "audit_module": module_value, "resource_id": str(resource_id)},
            )
            return None

        entry = AuditLogEntry(
            action=action_value,
            module=module_value,
            resource_id=str(resource_id),
            resource_type=resource_type,
            application_id=str(application_id) if application_id is not None else None,
            previous_state=previous_state,
            new_state=new_state,
            performed_by_user_id=actor.user_id,
            performed_by_user_name=actor.user_name,
            performed_by_user_role=actor.role.value,
            reason=reason,
            notes=notes,
            metadata_json=metadata or None,
            timestamp=datetime.utcnow(),
        )
        db.add(entry)
        flush(db)
        return entry

    @staticmethod
    def filter(db: Session, criteria: AuditLogFilter) -> List[AuditLogEntry]:
        query = db.query(AuditLogEntry)
        if criteria.module is not None:
            query = query.filter(AuditLogEntry.module == _enum_value(AuditModule, criteria.module))
        if criteria.action is not None:
            query = query.filter(AuditLogEntry.action == _enum_value(AuditAction, criteria.action))
        if criteria.user_id is not None:
            query = query.filter(AuditLogEntry.performed_by_user_id == criteria.user_id)
        if criteria.resource_id is not None:
            query = query.filter(AuditLogEntry.resource_id == str(criteria.resource_id))
        if criteria.start_date is not None:
            query = query.filter(AuditLogEntry.timestamp >= criteria.start_date)
        if criteria.end_date is not None:
            query = query.filter(AuditLogEntry.timestamp <= criteria.end_date)
        query = query.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
        if criteria.limit is not None:
            query = query.limit(criteria.limit)
        return query.all()

    @staticmethod
    def by_resource(db: Session, resource_id) -> List[AuditLogEntry]:
        return AuditService.filter(db, AuditLogFilter(resource_id=str(resource_id)))

    @staticmethod
    def by_user(db: Session, user_id: str) -> List[AuditLogEntry]:
        return AuditService.filter(db, AuditLogFilter(user_id=user_id))

    @staticmethod
    def application_history(db: Session, application_id) -> List[AuditLogEntry]:
        """Entries on the application itself plus on every record it owns."""
        app_id = str(application_id)
        return (
            db.query(AuditLogEntry)
            .filter(
                or_(
                    (AuditLogEntry.module == AuditModule.APPLICATION.value) & (AuditLogEntry.resource_id == app_id),
                    AuditLogEntry.application_id == app_id,
                )
            )
            .order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
            .all()
        )

    @staticmethod
    def log_application_action(
        db: Session,
        actor: Optional[Actor],
        action,
        application_id,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[AuditLogEntry]:
        return AuditService.record(
            db, actor, action, AuditModule.APPLICATION, application_id, "Application",
            previous_state=previous_status,
            new_state=new_status,
            reason=reason,
            notes=notes,
            application_id=application_id,
        )

    @staticmethod
    def log_verification_action(
        db: Session,
        actor: Optional[Actor],
        action,
        verification_id,
        application_id,
        previous_state: Optional[str] = None,
        new_state: Optional[str] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        original_ai_confidence: Optional[float] = None,
    ) -> Optional[AuditLogEntry]:
        metadata = dict(metadata or {})
        if original_ai_confidence is not None:
            metadata["original_ai_confidence"] = original_ai_confidence
        return AuditService.record(
            db, actor, action, AuditModule.VERIFICATION, verification_id, "Verification",
            previous_state=previous_state,
            new_state=new_state,
            reason=reason,
            notes=notes,
            metadata=metadata,
            application_id=application_id,
        )

    @staticmethod
    def log_payment_action(
        db: Session,
        actor: Optional[Actor],
        action,
        payment_id,
        application_id,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLogEntry]:
        return AuditService.record(
            db, actor, action, AuditModule.PAYMENT, payment_id, "Payment",
            previous_state=previous_status,
            new_state=new_status,
            reason=reason,
            metadata=metadata,
            application_id=application_id,
        )

    @staticmethod
    def log_delivery_action(
        db: Session,
        actor: Optional[Actor],
        action,
        delivery_id,
        application_id,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLogEntry]:
        return AuditService.record(
            db, actor, action, AuditModule.DELIVERY, delivery_id, "Delivery",
            previous_state=previous_status,
            new_state=new_status,
            notes=notes,
            metadata=metadata,
            application_id=application_id,
        )

    @staticmethod
    def log_addon_action(
        db: Session,
        actor: Optional[Actor],
        action,
        addon_id,
        application_id,
        previous_status: Optional[str] = None,
        new_status: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLogEntry]:
        return AuditService.record(
            db, actor, action, AuditModule.ADDON, addon_id, "Addon",
            previous_state=previous_status,
            new_state=new_status,
            metadata=metadata,
            application_id=application_id,
        )
