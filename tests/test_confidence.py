import pytest

from borderdesk.config import Settings
from borderdesk.confidence import (
    BAND_LABELS,
    ConfidenceOutOfRangeError,
    ConfidenceThresholds,
    VerificationBand,
    band_label,
    classify,
    requires_staff_decision,
)
from borderdesk.errors import ValidationError


class TestClassifyBoundaries:
    def test_exactly_auto_threshold_is_auto_verified(self):
        assert classify(0.85) == VerificationBand.AUTO_VERIFIED

    def test_just_below_auto_threshold_is_manual_review(self):
        assert classify(0.849999) == VerificationBand.MANUAL_REVIEW

    def test_exactly_manual_threshold_is_manual_review(self):
        assert classify(0.70) == VerificationBand.MANUAL_REVIEW

    def test_just_below_manual_threshold_is_flagged(self):
        assert classify(0.69999) == VerificationBand.FLAGGED

    def test_extremes(self):
        assert classify(1.0) == VerificationBand.AUTO_VERIFIED
        assert classify(0.0) == VerificationBand.FLAGGED
        assert classify(1) == VerificationBand.AUTO_VERIFIED

    def test_high_confidence(self):
        assert classify(0.92) == VerificationBand.AUTO_VERIFIED


class TestClassifyInvalidInput:
    @pytest.mark.parametrize("value", [-0.01, 1.01, float("nan"), float("inf")])
    def test_out_of_range_is_rejected(self, value):
        with pytest.raises(ConfidenceOutOfRangeError):
            classify(value)

    @pytest.mark.parametrize("value", [None, "0.9", True])
    def test_non_numeric_is_rejected(self, value):
        with pytest.raises(ConfidenceOutOfRangeError):
            classify(value)

    def test_out_of_range_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            classify(2.0)


class TestThresholds:
    def test_custom_thresholds(self):
        thresholds = ConfidenceThresholds(auto_verify=0.95, manual_review=0.5)
        assert classify(0.9, thresholds) == VerificationBand.MANUAL_REVIEW
        assert classify(0.95, thresholds) == VerificationBand.AUTO_VERIFIED
        assert classify(0.49, thresholds) == VerificationBand.FLAGGED

    def test_manual_must_be_below_auto(self):
        with pytest.raises(ValueError):
            ConfidenceThresholds(auto_verify=0.7, manual_review=0.7)

    def test_thresholds_must_be_in_unit_interval(self):
        with pytest.raises(ValueError):
            ConfidenceThresholds(auto_verify=1.2, manual_review=0.7)

    def test_from_settings(self):
        settings = Settings(ai_confidence_threshold=0.9, manual_review_threshold=0.6)
        thresholds = ConfidenceThresholds.from_settings(settings)
        assert thresholds.auto_verify == 0.9
        assert thresholds.manual_review == 0.6


class TestBandHelpers:
    def test_every_band_has_a_label(self):
        assert set(BAND_LABELS) == set(VerificationBand)

    def test_labels(self):
        assert band_label(VerificationBand.AUTO_VERIFIED) == "Auto Verified"
        assert band_label(VerificationBand.FLAGGED) == "Flagged (High Risk)"

    def test_only_auto_verified_skips_staff(self):
        assert not requires_staff_decision(VerificationBand.AUTO_VERIFIED)
        assert requires_staff_decision(VerificationBand.MANUAL_REVIEW)
        assert requires_staff_decision(VerificationBand.FLAGGED)
