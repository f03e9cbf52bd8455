"""
Unit tests for gaming risk assessment

Tests cover:
- Bot-like sessions scored critical
- Natural sessions scored clean
- Individual detectors
- Risk normalization over evaluable detectors
- Evidence-batch evaluation
- The neutral UNKNOWN result
"""

from datetime import datetime, timedelta

import pytest

from ccis_engine.adaptive.gaming import GamingEvaluationInput, GamingRiskAssessor
from ccis_engine.adaptive.progression import TaskEvidence
from ccis_engine.adaptive.signals import BehavioralSignalSet
from ccis_engine.core.exceptions import InvalidEvidenceError
from ccis_engine.schemas.progression import (
    GamingPatternType,
    GamingResponseAction,
    GamingRiskLevel,
    GamingRiskResult,
)


@pytest.fixture
def assessor():
    return GamingRiskAssessor()


@pytest.fixture
def human_signals():
    return BehavioralSignalSet(
        hint_request_frequency=0.9,
        error_recovery_speed=0.3,
        transfer_success_rate=0.6,
        metacognitive_accuracy=0.2,
        task_completion_efficiency=0.8,
        help_seeking_quality=0.5,
        self_assessment_alignment=0.1,
    )


@pytest.fixture
def human_session(human_signals):
    return GamingEvaluationInput(
        session_id="session_human",
        signals=human_signals,
        timing_pattern=[45, 80, 62, 120, 95],
        hint_usage_pattern=[1, 2, 0, 1, 1],
        error_pattern=[1, 0, 2, 1, 0],
        answer_changes=[1, 0, 0, 0, 0],
    )


@pytest.fixture
def bot_session():
    return GamingEvaluationInput(
        session_id="session_bot",
        signals=BehavioralSignalSet.uniform(1.0),
        timing_pattern=[2, 2, 2, 2, 2],
        hint_usage_pattern=[0, 0, 0, 0, 0],
        error_pattern=[0, 0, 0, 0, 0],
        answer_changes=[3, 4, 3, 5, 3],
    )


class TestSessionEvaluation:
    """Tests for whole-session risk"""

    def test_bot_session_is_critical(self, assessor, bot_session):
        """Fast, mechanical, perfect sessions are invalidated"""
        result = assessor.evaluate(bot_session)

        # Historical detector has no data, so the score is normalized over 0.9
        assert result.risk_score == pytest.approx(0.78 / 0.9)
        assert result.risk_level == GamingRiskLevel.CRITICAL
        assert result.recommended_action == GamingResponseAction.INVALIDATE_SESSION
        assert result.requires_human_review is True
        assert result.confidence == pytest.approx(0.9)
        assert GamingPatternType.SPEED_GAMING in result.flagged_patterns
        assert GamingPatternType.ANSWER_CHANGING in result.flagged_patterns
        assert GamingPatternType.VARIANCE_ANOMALY in result.flagged_patterns
        assert result.evidence

    def test_human_session_is_clean(self, assessor, human_session):
        """Natural variability raises no flags"""
        result = assessor.evaluate(human_session)

        assert result.risk_score == 0.0
        assert result.risk_level == GamingRiskLevel.NONE
        assert result.recommended_action == GamingResponseAction.NO_ACTION
        assert result.requires_human_review is False
        assert result.flagged_patterns == []

    def test_risk_in_unit_interval(self, assessor, bot_session):
        bot_session.historical_average = 0.1

        result = assessor.evaluate(bot_session)

        assert 0.0 <= result.risk_score <= 1.0
        assert result.confidence == pytest.approx(1.0)
        assert GamingPatternType.IMPOSSIBLE_IMPROVEMENT in result.flagged_patterns

    def test_custom_review_threshold(self, human_session):
        """Review is required at or above the configured threshold"""
        human_session.timing_pattern = [5, 5, 5, 5, 5]
        result = GamingRiskAssessor(high_risk_threshold=0.3).evaluate(human_session)

        assert result.risk_score >= 0.3
        assert result.requires_human_review is True

    @pytest.mark.parametrize("field_name,value", [
        ("timing_pattern", [10, -1]),
        ("error_pattern", [-2]),
        ("answer_changes", [-1]),
    ])
    def test_negative_observations_rejected(self, assessor, human_session, field_name, value):
        setattr(human_session, field_name, value)

        with pytest.raises(InvalidEvidenceError):
            assessor.evaluate(human_session)

    def test_historical_average_out_of_range(self, assessor, human_session):
        human_session.historical_average = 1.5

        with pytest.raises(InvalidEvidenceError):
            assessor.evaluate(human_session)


class TestDetectors:
    """Tests for individual detectors"""

    def test_slow_tasks_flag_time_manipulation(self, assessor, human_session):
        """Tasks over 30 minutes are suspicious on a stable connection"""
        human_session.timing_pattern = [45, 80, 2400, 120, 95]

        result = assessor._response_time_outliers(human_session)

        assert result.flagged
        assert result.pattern_type == GamingPatternType.TIME_MANIPULATION

    def test_poor_network_suppresses_slow_task_rule(self, assessor, human_session):
        human_session.timing_pattern = [45, 80, 2400, 120, 95]
        human_session.environment_metadata = {"network_stability": "poor"}

        assert not assessor._response_time_outliers(human_session).flagged

    def test_regular_timing(self, assessor, human_session):
        """Coefficient of variation under 0.15 looks scripted"""
        human_session.timing_pattern = [60, 62, 58, 61, 59]

        result = assessor._timing_regularity(human_session)

        assert result.flagged
        assert result.confidence == 0.9

    def test_timing_regularity_needs_three_tasks(self, assessor, human_session):
        human_session.timing_pattern = [60, 60]

        assert assessor._timing_regularity(human_session).evaluable is False

    def test_moderate_answer_changes(self, assessor, human_session):
        human_session.answer_changes = [1, 2, 2, 1]

        result = assessor._answer_change_frequency(human_session)

        assert result.confidence == 0.6
        assert result.flagged

    def test_no_answer_data_not_evaluable(self, assessor, human_session):
        human_session.answer_changes = []

        assert assessor._answer_change_frequency(human_session).evaluable is False

    def test_flat_signals_flag_variance(self, assessor, human_session):
        human_session.signals = BehavioralSignalSet.uniform(0.5)

        result = assessor._signal_variance(human_session)

        assert result.confidence == 0.8
        assert result.pattern_type == GamingPatternType.VARIANCE_ANOMALY

    def test_error_free_run(self, assessor, human_session):
        human_session.error_pattern = [0, 0, 0, 0, 0]

        result = assessor._performance_pattern(human_session)

        assert result.pattern_type == GamingPatternType.PERFECT_PERFORMANCE
        assert result.confidence == 0.8

    def test_historical_improvement(self, assessor, human_session):
        """More than 30 points over the historical average is implausible"""
        human_session.historical_average = 0.1

        result = assessor._historical_improvement(human_session)

        assert result.flagged
        assert result.pattern_type == GamingPatternType.IMPOSSIBLE_IMPROVEMENT


class TestRiskLevels:
    @pytest.mark.parametrize("score,level", [
        (0.0, GamingRiskLevel.NONE),
        (0.2, GamingRiskLevel.LOW),
        (0.4, GamingRiskLevel.MEDIUM),
        (0.6, GamingRiskLevel.HIGH),
        (0.8, GamingRiskLevel.CRITICAL),
    ])
    def test_levels(self, assessor, score, level):
        assert assessor.risk_level(score) == level


class TestEvidenceEvaluation:
    """Tests for batch evaluation of task evidence"""

    def _evidence(self, completion_ms, signals, scaffolding=1):
        start = datetime(2025, 3, 1)
        return [
            TaskEvidence(
                task_interaction_id=f"task_{i}",
                performance_score=0.6,
                signals=signals,
                confidence_score=0.8,
                completion_time_ms=ms,
                scaffolding_used=scaffolding,
                timestamp=start + timedelta(hours=i),
            )
            for i, ms in enumerate(completion_ms)
        ]

    def test_fast_evidence_is_flagged(self, assessor):
        evidence = self._evidence([1500, 1500, 1500, 1500], BehavioralSignalSet.uniform(1.0), scaffolding=0)

        result = assessor.evaluate_evidence(evidence, session_id="batch_1")

        assert result.session_id == "batch_1"
        assert result.risk_level in (GamingRiskLevel.HIGH, GamingRiskLevel.CRITICAL)
        assert result.requires_human_review is True

    def test_realistic_evidence_is_not_reviewed(self, assessor, human_signals):
        evidence = self._evidence([45_000, 80_000, 62_000, 120_000], human_signals)

        result = assessor.evaluate_evidence(evidence)

        assert result.requires_human_review is False
        assert result.session_id == "task_3"

    def test_empty_batch_rejected(self, assessor):
        with pytest.raises(InvalidEvidenceError):
            assessor.evaluate_evidence([])


class TestUnknownResult:
    def test_unknown_is_neutral(self):
        """Incomplete evaluations are neither flagged nor reviewed"""
        result = GamingRiskResult.unknown("session_1", "timed out")

        assert result.is_unknown
        assert result.risk_score == 0.0
        assert result.confidence == 0.0
        assert result.requires_human_review is False
        assert result.recommended_action == GamingResponseAction.MONITOR_CLOSELY
        assert result.evidence == ["timed out"]
