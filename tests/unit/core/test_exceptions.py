"""
Unit tests for the engine error taxonomy
"""

import pytest

from ccis_engine.core.exceptions import (
    BusinessRuleViolation,
    ConcurrencyConflictError,
    CriteriaNotMetError,
    DataQualityWarning,
    ErrorKind,
    EvidenceOnMasteredAssessmentError,
    GamingRiskFlag,
    InvalidEvidenceError,
    InvalidLevelError,
    InvalidSignalError,
    ProgressionEngineError,
    ValidationError,
)


class TestErrorKinds:
    @pytest.mark.parametrize("error_cls", [InvalidSignalError, InvalidLevelError, InvalidEvidenceError])
    def test_validation_errors(self, error_cls):
        error = error_cls("bad value", "field")

        assert isinstance(error, ValidationError)
        assert error.kind == ErrorKind.VALIDATION

    @pytest.mark.parametrize("error_cls", [EvidenceOnMasteredAssessmentError, ConcurrencyConflictError])
    def test_business_rule_errors(self, error_cls):
        error = error_cls("not allowed")

        assert isinstance(error, BusinessRuleViolation)
        assert error.kind == ErrorKind.BUSINESS_RULE

    def test_criteria_not_met_lists_failures(self):
        error = CriteriaNotMetError("criteria not met", ["min_task_count"])

        assert error.field == "levelAdvancement"
        assert error.failed_criteria == ["min_task_count"]

    def test_to_dict(self):
        payload = InvalidSignalError("Signal out of range", "hint_request_frequency").to_dict()

        assert payload == {
            "kind": "validation_error",
            "error": "InvalidSignalError",
            "message": "Signal out of range",
            "field": "hint_request_frequency",
        }

    def test_all_errors_share_base(self):
        assert issubclass(CriteriaNotMetError, ProgressionEngineError)
        assert str(InvalidLevelError("Level 5 does not exist")) == "Level 5 does not exist"


class TestNonFatalConditions:
    def test_data_quality_is_a_warning(self):
        assert issubclass(DataQualityWarning, UserWarning)
        assert DataQualityWarning.kind == ErrorKind.DATA_QUALITY

    def test_gaming_flag_is_a_record(self):
        flag = GamingRiskFlag(task_interaction_id="task_1", risk_score=0.9, patterns=["speed_gaming"])

        assert flag.kind == ErrorKind.GAMING_RISK
        assert not isinstance(flag, Exception)
