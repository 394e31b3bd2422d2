from .user import UserRole, Actor
from .application import Application, ApplicationStatus, DeliveryOption, PaymentStatus, VehicleType
from .verification import (
    AIVerification,
    DocumentType,
    RejectionReason,
    REJECTION_REASON_LABELS,
    VerificationAuditAction,
    OverrideDecision,
)
from .audit import AuditLogEntry, AuditAction, AuditModule, AuditLogImmutableError
from .delivery import (
    DeliveryRecord,
    DeliveryMethod,
    DeliveryStatus,
    CourierProvider,
    DELIVERY_STATUS_TRANSITIONS,
    DELIVERY_STATUS_ORDER,
)
from .payment import Payment, PaymentMethod, PAYMENT_STATUS_TRANSITIONS
from .addon import Addon, AddonType, AddonStatus, ADDON_STATUS_TRANSITIONS

__all__ = [
    "UserRole",
    "Actor",
    "Application",
    "ApplicationStatus",
    "DeliveryOption",
    "PaymentStatus",
    "VehicleType",
    "AIVerification",
    "DocumentType",
    "RejectionReason",
    "REJECTION_REASON_LABELS",
    "VerificationAuditAction",
    "OverrideDecision",
    "AuditLogEntry",
    "AuditAction",
    "AuditModule",
    "AuditLogImmutableError",
    "DeliveryRecord",
    "DeliveryMethod",
    "DeliveryStatus",
    "CourierProvider",
    "DELIVERY_STATUS_TRANSITIONS",
    "DELIVERY_STATUS_ORDER",
    "Payment",
    "PaymentMethod",
    "PAYMENT_STATUS_TRANSITIONS",
    "Addon",
    "AddonType",
    "AddonStatus",
    "ADDON_STATUS_TRANSITIONS",
]
