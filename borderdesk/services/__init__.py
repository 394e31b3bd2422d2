from .audit import AuditService, AuditLogFilter
from .applications import ApplicationWorkflowService, TransitionOutcome
from .verification import VerificationReviewService, ReviewOutcome, replay_verification_state
from .delivery import DeliveryService
from .payments import PaymentService
from .addons import AddonService

__all__ = [
    "AuditService",
    "AuditLogFilter",
    "ApplicationWorkflowService",
    "TransitionOutcome",
    "VerificationReviewService",
    "ReviewOutcome",
    "replay_verification_state",
    "DeliveryService",
    "PaymentService",
    "AddonService",
]
