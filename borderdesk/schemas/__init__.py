from .application import (
    ApplicationCreate,
    ApplicationResponse,
    ApplicationTransitionRequest,
    WorkflowValidationResponse,
    AllowedTransitionsResponse,
)
from .verification import (
    VerificationIngestRequest,
    TriageRequest,
    ApproveRequest,
    RejectRequest,
    ReUploadRequest,
    OverrideRequest,
    VerificationResponse,
    ReviewOutcomeResponse,
    VerificationAuditResponse,
    AIMetricsResponse,
)
from .audit import AuditLogResponse
from .delivery import (
    DeliveryCreate,
    DeliveryAdvanceRequest,
    CourierTrackingRequest,
    DeliveryResponse,
    DeliveryStatisticsResponse,
)
from .payment import PaymentCreate, PaymentFailRequest, PaymentRefundRequest, PaymentResponse, VersionedRequest
from .addon import AddonCreate, AddonStatusUpdate, AddonResponse
from .user import ActorResponse, PermissionsResponse

__all__ = [
    "ApplicationCreate",
    "ApplicationResponse",
    "ApplicationTransitionRequest",
    "WorkflowValidationResponse",
    "AllowedTransitionsResponse",
    "VerificationIngestRequest",
    "TriageRequest",
    "ApproveRequest",
    "RejectRequest",
    "ReUploadRequest",
    "OverrideRequest",
    "VerificationResponse",
    "ReviewOutcomeResponse",
    "VerificationAuditResponse",
    "AIMetricsResponse",
    "AuditLogResponse",
    "DeliveryCreate",
    "DeliveryAdvanceRequest",
    "CourierTrackingRequest",
    "DeliveryResponse",
    "DeliveryStatisticsResponse",
    "PaymentCreate",
    "PaymentFailRequest",
    "PaymentRefundRequest",
    "PaymentResponse",
    "VersionedRequest",
    "AddonCreate",
    "AddonStatusUpdate",
    "AddonResponse",
    "ActorResponse",
    "PermissionsResponse",
]
