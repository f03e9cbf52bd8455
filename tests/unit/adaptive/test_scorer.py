"""
Unit tests for behavioral scoring

Tests cover:
- Weighted dot-product score and breakdown
- Assessment confidence
- Local, remote and fallback scorers
- Industry-weighted aggregation across competencies
"""

import httpx
import pytest

from ccis_engine.adaptive.signals import (
    SIGNAL_WEIGHTS,
    BehavioralScorer,
    BehavioralSignalSet,
    ConfidenceBand,
    FallbackScorer,
    LocalScorer,
    RemoteEstimatorScorer,
    ScoringOutcome,
    build_scorer,
    aggregate_overall_level,
)
from ccis_engine.adaptive.signals.scorer import Scorer
from ccis_engine.core.catalog import load_default_catalog
from ccis_engine.core.config import Settings
from ccis_engine.core.exceptions import InvalidSignalError, ValidationError


class TestBehavioralScorer:
    """Tests for the fixed-weight independence score"""

    @pytest.fixture
    def scorer(self):
        return BehavioralScorer()

    def test_score_is_weighted_dot_product(self, scorer, signals):
        """Score equals the sum of signal times weight"""
        expected = sum(signals.get(name) * weight for name, weight in SIGNAL_WEIGHTS.items())

        assert scorer.score(signals) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [0.0, 0.25, 0.6, 1.0])
    def test_uniform_signals_score_their_value(self, scorer, value):
        """Weights sum to one, so uniform signals score their common value"""
        assert scorer.score(BehavioralSignalSet.uniform(value)) == pytest.approx(value)

    def test_accepts_mapping(self, scorer, signal_values, signals):
        """Plain mappings are validated and scored"""
        assert scorer.score(signal_values) == pytest.approx(scorer.score(signals))

    def test_rejects_invalid_mapping(self, scorer, signal_values):
        """Invalid mapping values raise InvalidSignalError"""
        signal_values["hint_request_frequency"] = 1.5

        with pytest.raises(InvalidSignalError):
            scorer.score(signal_values)

    def test_rejects_other_types(self, scorer):
        with pytest.raises(InvalidSignalError):
            scorer.score([0.5] * 7)

    def test_breakdown_sorted_by_contribution(self, scorer, signals):
        """Breakdown rows are largest contribution first and sum to the score"""
        rows = scorer.breakdown(signals)

        assert len(rows) == 7
        assert rows[0].signal.value == "hint_request_frequency"
        assert [r.contribution for r in rows] == sorted((r.contribution for r in rows), reverse=True)
        assert sum(r.contribution for r in rows) == pytest.approx(scorer.score(signals))


class TestAssessmentConfidence:
    """Tests for confidence in a computed score"""

    @pytest.fixture
    def scorer(self):
        return BehavioralScorer()

    def test_full_coverage_uniform_signals(self, scorer):
        """Consistent signals over enough tasks and time give full confidence"""
        confidence = scorer.assessment_confidence(BehavioralSignalSet.uniform(0.6), task_count=5, duration_minutes=15)

        assert confidence.value == pytest.approx(1.0)
        assert confidence.band == ConfidenceBand.VERY_HIGH

    def test_partial_coverage(self, scorer):
        """Coverage and duration scale linearly below saturation"""
        confidence = scorer.assessment_confidence(BehavioralSignalSet.uniform(0.6), task_count=1, duration_minutes=3)

        # 0.6 * 1 + 0.25 * 0.2 + 0.15 * 0.2
        assert confidence.value == pytest.approx(0.68)
        assert confidence.band == ConfidenceBand.MODERATE

    def test_negative_inputs_rejected(self, scorer, signals):
        with pytest.raises(ValidationError):
            scorer.assessment_confidence(signals, task_count=-1, duration_minutes=5)


class StubScorer(Scorer):
    name = "stub"

    def __init__(self, outcome: ScoringOutcome):
        self.outcome = outcome
        self.calls = 0

    def score(self, signals, context=None):
        self.calls += 1
        return self.outcome


class TestRemoteEstimatorScorer:
    """Tests for the HTTP estimator client"""

    def _scorer(self, handler) -> RemoteEstimatorScorer:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return RemoteEstimatorScorer(url="http://estimator.test/score", api_key="secret", client=client)

    def test_successful_score(self, signals):
        """A valid response becomes a successful outcome"""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = request.read()
            return httpx.Response(200, json={"score": 0.42})

        outcome = self._scorer(handler).score(signals, {"competency_id": "teamwork"})

        assert outcome.ok is True
        assert outcome.value == 0.42
        assert outcome.source == "remote"
        assert seen["auth"] == "Bearer secret"
        assert b"hint_request_frequency" in seen["body"]
        assert b"teamwork" in seen["body"]

    @pytest.mark.parametrize("response", [
        httpx.Response(503, json={"error": "unavailable"}),
        httpx.Response(200, json={"score": 1.7}),
        httpx.Response(200, json={"value": 0.5}),
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json=[0.5]),
    ])
    def test_bad_responses_are_failures(self, signals, response):
        """Non-2xx, out-of-range and malformed payloads never raise"""
        outcome = self._scorer(lambda request: response).score(signals)

        assert outcome.ok is False
        assert outcome.value is None
        assert outcome.error

    def test_transport_error_is_failure(self, signals):
        """Connection errors become failed outcomes"""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        outcome = self._scorer(handler).score(signals)

        assert outcome.ok is False
        assert "request failed" in outcome.error


class TestFallbackScorer:
    """Tests for the primary/fallback policy"""

    def test_primary_success_is_used(self, signals):
        primary = StubScorer(ScoringOutcome.success(0.9, "stub"))
        fallback = StubScorer(ScoringOutcome.success(0.1, "local"))

        outcome = FallbackScorer(primary, fallback).score(signals)

        assert outcome.value == 0.9
        assert outcome.fallback_used is False
        assert fallback.calls == 0

    def test_primary_failure_falls_back(self, signals):
        """The fallback's value is used and the primary error is kept"""
        primary = StubScorer(ScoringOutcome.failure("estimator down", "stub"))

        outcome = FallbackScorer(primary, LocalScorer()).score(signals)

        assert outcome.ok is True
        assert outcome.fallback_used is True
        assert outcome.source == "local"
        assert outcome.error == "estimator down"
        assert outcome.value == pytest.approx(BehavioralScorer().score(signals))


class TestBuildScorer:
    """Tests for scorer selection from settings"""

    def test_local_by_default(self):
        assert isinstance(build_scorer(Settings(EXTERNAL_SCORER_ENABLED=False)), LocalScorer)

    def test_remote_with_local_fallback(self):
        scorer = build_scorer(Settings(
            EXTERNAL_SCORER_ENABLED=True,
            EXTERNAL_SCORER_URL="http://estimator.test/score",
        ))

        assert isinstance(scorer, FallbackScorer)
        assert isinstance(scorer.primary, RemoteEstimatorScorer)
        assert isinstance(scorer.fallback, LocalScorer)

    def test_enabled_without_url_stays_local(self):
        assert isinstance(build_scorer(Settings(EXTERNAL_SCORER_ENABLED=True, EXTERNAL_SCORER_URL="")), LocalScorer)


class TestAggregateOverallLevel:
    """Tests for industry-weighted multi-competency levels"""

    def test_weighted_by_industry_weight(self):
        """Overall score is the industry-weighted mean"""
        catalog = load_default_catalog()
        result = aggregate_overall_level(catalog, {"communication": 0.9, "leadership": 0.1})

        expected = (0.9 * 0.20 + 0.1 * 0.05) / 0.25
        assert result.raw_score == pytest.approx(expected)
        assert result.overall_level.level == 3
        assert result.strongest[0] == "communication"
        assert result.development_areas == ["leadership"]

    def test_aliases_resolved(self):
        result = aggregate_overall_level(load_default_catalog(), {"collaboration": 0.5})

        assert result.competencies[0].competency_id == "teamwork"
        assert result.overall_level.level == 3

    def test_empty_scores_rejected(self):
        with pytest.raises(ValidationError):
            aggregate_overall_level(load_default_catalog(), {})

    def test_unknown_competency_rejected(self):
        with pytest.raises(ValidationError):
            aggregate_overall_level(load_default_catalog(), {"juggling": 0.5})
