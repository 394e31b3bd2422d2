"""Triage of AI confidence scores into verification bands.

    >= auto_verify          AUTO_VERIFIED   no staff action required
    >= manual_review        MANUAL_REVIEW   staff decision required
    below manual_review     FLAGGED         high risk, surfaced separately

Each threshold is inclusive on the lower bound of the higher band, so a
score of exactly 0.85 is auto-verified and exactly 0.70 goes to manual review.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import Settings, get_settings
from .errors import ValidationError


class VerificationBand(str, Enum):
    AUTO_VERIFIED = "auto_verified"
    MANUAL_REVIEW = "manual_review"
    FLAGGED = "flagged"


BAND_LABELS = {
    VerificationBand.AUTO_VERIFIED: "Auto Verified",
    VerificationBand.MANUAL_REVIEW: "Manual Review Required",
    VerificationBand.FLAGGED: "Flagged (High Risk)",
}

BAND_DESCRIPTIONS = {
    VerificationBand.AUTO_VERIFIED: "High confidence - document automatically verified by AI",
    VerificationBand.MANUAL_REVIEW: "Medium confidence - requires staff review before approval",
    VerificationBand.FLAGGED: "Low confidence - document flagged for detailed inspection",
}

for _table in (BAND_LABELS, BAND_DESCRIPTIONS):
    _missing = set(VerificationBand) - set(_table)
    if _missing:
        raise RuntimeError(f"Verification bands without a label: {sorted(b.value for b in _missing)}")


class ConfidenceOutOfRangeError(ValidationError):
    def __init__(self, confidence):
        self.confidence = confidence
        super().__init__(f"Confidence score {confidence!r} is outside [0, 1]; the scoring data is invalid.")


@dataclass(frozen=True)
class ConfidenceThresholds:
    auto_verify: float = 0.85
    manual_review: float = 0.70

    def __post_init__(self):
        if not (0.0 <= self.manual_review < self.auto_verify <= 1.0):
            raise ValueError(
                f"Invalid confidence thresholds: need 0 <= manual_review ({self.manual_review}) "
                f"< auto_verify ({self.auto_verify}) <= 1"
            )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ConfidenceThresholds":
        settings = settings or get_settings()
        return cls(
            auto_verify=settings.ai_confidence_threshold,
            manual_review=settings.manual_review_threshold,
        )


DEFAULT_THRESHOLDS = ConfidenceThresholds()


def classify(confidence: float, thresholds: ConfidenceThresholds = DEFAULT_THRESHOLDS) -> VerificationBand:
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise ConfidenceOutOfRangeError(confidence)
    if math.isnan(confidence) or not (0.0 <= confidence <= 1.0):
        raise ConfidenceOutOfRangeError(confidence)

    if confidence >= thresholds.auto_verify:
        return VerificationBand.AUTO_VERIFIED
    if confidence >= thresholds.manual_review:
        return VerificationBand.MANUAL_REVIEW
    return VerificationBand.FLAGGED


def requires_staff_decision(band: VerificationBand) -> bool:
    return band != VerificationBand.AUTO_VERIFIED


def band_label(band: VerificationBand) -> str:
    return BAND_LABELS[band]


def band_description(band: VerificationBand) -> str:
    return BAND_DESCRIPTIONS[band]
