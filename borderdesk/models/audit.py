from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, event

from ..database import Base


class AuditAction(str, Enum):
    APPLICATION_CREATED = "application_created"
    APPLICATION_UPDATED = "application_updated"
    APPLICATION_APPROVED = "application_approved"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_COMPLETED = "application_completed"
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_VERIFIED = "document_verified"
    DOCUMENT_REJECTED = "document_rejected"
    DOCUMENT_REUPLOAD_REQUESTED = "document_reupload_requested"
    AI_VERIFICATION_COMPLETED = "ai_verification_completed"
    AI_OVERRIDE = "ai_override"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"
    DELIVERY_SHIPPED = "delivery_shipped"
    DELIVERY_IN_TRANSIT = "delivery_in_transit"
    DELIVERY_COMPLETED = "delivery_completed"
    ADDON_ADDED = "addon_added"
    ADDON_CANCELLED = "addon_cancelled"
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    SETTINGS_UPDATED = "settings_updated"
    REPORT_GENERATED = "report_generated"
    STATUS_CHANGED = "status_changed"


class AuditModule(str, Enum):
    APPLICATION = "application"
    VERIFICATION = "verification"
    PAYMENT = "payment"
    DELIVERY = "delivery"
    ADDON = "addon"
    USER = "user"
    SETTINGS = "settings"
    REPORT = "report"
    SYSTEM = "system"


class AuditLogImmutableError(Exception):
    pass


class AuditLogEntry(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(50), nullable=False, index=True)
    module = Column(String(20), nullable=False, index=True)
    resource_id = Column(String(64), nullable=False, index=True)
    resource_type = Column(String(50), nullable=False)
    # Owning application of the resource, when there is one
    application_id = Column(String(64), nullable=True, index=True)

    previous_state = Column(String(50), nullable=True)
    new_state = Column(String(50), nullable=True)

    performed_by_user_id = Column(String(64), nullable=False, index=True)
    performed_by_user_name = Column(String(255), nullable=False)
    performed_by_user_role = Column(String(20), nullable=False)

    reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    metadata_json = Column(JSON, nullable=True)

    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


@event.listens_for(AuditLogEntry, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log entry {target.id} is append-only and cannot be modified")


@event.listens_for(AuditLogEntry, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError(f"Audit log entry {target.id} is append-only and cannot be deleted")
