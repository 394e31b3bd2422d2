from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Integer, String, DateTime, Float, Boolean, Text, ForeignKey, JSON

from ..database import Base


class DocumentType(str, Enum):
    DRIVERS_LICENSE = "drivers_license"
    PASSPORT = "passport"
    VEHICLE_REGISTRATION = "vehicle_registration"


class RejectionReason(str, Enum):
    BLURRED = "blurred"
    MISMATCH = "mismatch"
    EXPIRED = "expired"
    UNCLEAR = "unclear"
    INCOMPLETE = "incomplete"
    FRAUDULENT = "fraudulent"


REJECTION_REASON_LABELS = {
    RejectionReason.BLURRED: "Document is blurred",
    RejectionReason.MISMATCH: "Data mismatch with application",
    RejectionReason.EXPIRED: "Document has expired",
    RejectionReason.UNCLEAR: "Information is unclear",
    RejectionReason.INCOMPLETE: "Document is incomplete",
    RejectionReason.FRAUDULENT: "Suspected fraudulent document",
}


class VerificationAuditAction(str, Enum):
    AUTO_VERIFIED = "auto_verified"
    PENDING_REVIEW = "pending_review"
    FLAGGED = "flagged"
    APPROVED = "approved"
    REJECTED = "rejected"
    RE_UPLOAD_REQUESTED = "re_upload_requested"
    AI_OVERRIDE = "ai_override"


class OverrideDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class AIVerification(Base):
    __tablename__ = "ai_verifications"

    id = Column(Integer, primary_key=True, index=True)
    application_id = Column(Integer, ForeignKey("applications.id"), nullable=False, index=True)

    document_type = Column(String(50), nullable=False)
    document_url = Column(String(500), nullable=True)

    # [{"label", "value", "confidence", "region"?, "mismatch"?}, ...] as produced by the OCR service
    extracted_fields = Column(JSON, nullable=False, default=list)
    overall_confidence = Column(Float, nullable=False)

    # Last band assigned at triage; NULL until triaged
    band = Column(String(20), nullable=True)

    verified_by_ai = Column(Boolean, nullable=False, default=False)
    reviewed_by_staff = Column(Boolean, nullable=False, default=False)
    flagged = Column(Boolean, nullable=False, default=False)
    re_upload_requested = Column(Boolean, nullable=False, default=False)

    rejection_reason = Column(String(20), nullable=True)
    reviewer_notes = Column(Text, nullable=True)
    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal_for_staff(self) -> bool:
        return bool(self.reviewed_by_staff) and not self.re_upload_requested
