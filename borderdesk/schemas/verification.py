from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, field_validator

from ..models.verification import DocumentType, OverrideDecision, RejectionReason

from .application import ApplicationResponse


class ExtractedField(BaseModel):
    label: str
    value: str
    confidence: float
    region: Optional[str] = None
    mismatch: bool = False


class VerificationIngestRequest(BaseModel):
    application_id: int
    document_type: DocumentType
    overall_confidence: float
    extracted_fields: List[ExtractedField] = []
    document_url: Optional[str] = None


class VerificationResubmitRequest(BaseModel):
    overall_confidence: float
    extracted_fields: Optional[List[ExtractedField]] = None
    document_url: Optional[str] = None
    expected_version: Optional[int] = None


class TriageRequest(BaseModel):
    expected_version: Optional[int] = None


class ApproveRequest(BaseModel):
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class RejectRequest(BaseModel):
    reason: RejectionReason
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class ReUploadRequest(BaseModel):
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class OverrideRequest(BaseModel):
    decision: OverrideDecision
    justification: str
    expected_version: Optional[int] = None

    @field_validator("justification")
    @classmethod
    def justification_strip(cls, v: str) -> str:
        return v.strip()


class VerificationResponse(BaseModel):
    id: int
    application_id: int
    document_type: str
    document_url: Optional[str]
    extracted_fields: List[Dict[str, Any]]
    overall_confidence: float
    band: Optional[str]
    band_label: Optional[str] = None
    state: Optional[str] = None
    verified_by_ai: bool
    reviewed_by_staff: bool
    flagged: bool
    re_upload_requested: bool
    rejection_reason: Optional[str]
    reviewer_notes: Optional[str]
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    created_at: datetime
    version: int

    class Config:
        from_attributes = True


class LinkedTransitionResponse(BaseModel):
    from_status: str
    to_status: str
    outcome: str
    blocked_reason: Optional[str] = None

    class Config:
        from_attributes = True


class ReviewOutcomeResponse(BaseModel):
    verification: VerificationResponse
    application: ApplicationResponse
    application_transition: Optional[LinkedTransitionResponse] = None
    deferred_transition: bool = False
    audit_entry_id: Optional[int] = None


class VerificationAuditResponse(BaseModel):
    action: str
    performed_by: str
    performed_by_id: str
    performed_by_role: str
    timestamp: datetime
    notes: Optional[str] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = {}

    class Config:
        from_attributes = True


class AIMetricsResponse(BaseModel):
    total_verifications: int
    auto_verified_count: int
    manual_review_count: int
    flagged_count: int
    human_override_count: int
    auto_verification_success_rate: float
    human_override_rate: float
    average_confidence: float
    false_positive_rate: float
    false_negative_rate: float

    class Config:
        from_attributes = True
