"""
Behavioral Scoring

Turns a BehavioralSignalSet into a single independence score in [0, 1]:

    score = sum(signal_i * weight_i)

Scoring is pluggable. A Scorer returns a ScoringOutcome instead of raising, so
callers can fall back to the local weighted model when an external estimator
is unavailable:

- LocalScorer: deterministic fixed-weight model
- RemoteEstimatorScorer: posts signals to an external estimator over HTTP
- FallbackScorer: primary scorer, local scorer when the primary fails
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
import logging
import math

import httpx
import numpy as np

from ccis_engine.core.catalog import CompetencyCatalog
from ccis_engine.core.config import Settings
from ccis_engine.core.exceptions import InvalidSignalError, ValidationError

from .behavioral_signals import SIGNAL_WEIGHTS, BehavioralSignalSet, SignalName
from .confidence import ConfidenceScore
from .level_classifier import CCISLevel, LevelClassifier

logger = logging.getLogger(__name__)

SignalInput = Union[BehavioralSignalSet, Mapping[str, float]]


def _coerce_signals(signals: SignalInput) -> BehavioralSignalSet:
    if isinstance(signals, BehavioralSignalSet):
        return signals
    if isinstance(signals, Mapping):
        return BehavioralSignalSet.from_mapping(signals)
    raise InvalidSignalError("Signals must be a BehavioralSignalSet or a mapping", "signals")


@dataclass
class SignalContribution:
    """One row of a score breakdown"""
    signal: SignalName
    value: float
    weight: float
    contribution: float


class BehavioralScorer:
    """
    Fixed-weight independence model.

    Pure: the same signals always yield the same score.
    """

    # Confidence blend: consistency of the signals, task coverage, time on task
    CONFIDENCE_WEIGHTS = {"consistency": 0.6, "coverage": 0.25, "duration": 0.15}
    FULL_COVERAGE_TASKS = 5
    FULL_DURATION_MINUTES = 15.0

    def __init__(self, weights: Optional[Dict[SignalName, float]] = None):
        self.weights = dict(weights or SIGNAL_WEIGHTS)

    def score(self, signals: SignalInput) -> float:
        signal_set = _coerce_signals(signals)
        total = sum(signal_set.get(name) * weight for name, weight in self.weights.items())
        return max(0.0, min(1.0, total))

    def breakdown(self, signals: SignalInput) -> List[SignalContribution]:
        """Per-signal contributions, largest first"""
        signal_set = _coerce_signals(signals)
        rows = [
            SignalContribution(
                signal=name,
                value=signal_set.get(name),
                weight=weight,
                contribution=signal_set.get(name) * weight,
            )
            for name, weight in self.weights.items()
        ]
        return sorted(rows, key=lambda r: r.contribution, reverse=True)

    def assessment_confidence(
        self,
        signals: SignalInput,
        task_count: int,
        duration_minutes: float,
    ) -> ConfidenceScore:
        """
        How much to trust a score computed from these signals.

        Consistency falls as the seven signals disagree with each other;
        coverage and duration saturate at 5 tasks and 15 minutes.
        """
        signal_set = _coerce_signals(signals)
        if task_count < 0 or duration_minutes < 0:
            raise ValidationError("Task count and duration must be non-negative", "assessmentConfidence")

        variance = float(np.var(signal_set.as_vector()))
        consistency = max(0.0, 1.0 - variance * 2)
        coverage = min(task_count / self.FULL_COVERAGE_TASKS, 1.0)
        duration = min(duration_minutes / self.FULL_DURATION_MINUTES, 1.0)

        value = (
            consistency * self.CONFIDENCE_WEIGHTS["consistency"]
            + coverage * self.CONFIDENCE_WEIGHTS["coverage"]
            + duration * self.CONFIDENCE_WEIGHTS["duration"]
        )
        return ConfidenceScore(max(0.0, min(1.0, value)))


# ============================================================================
# Pluggable scorers
# ============================================================================

@dataclass(frozen=True)
class ScoringOutcome:
    """Result of a scoring attempt. Failures are values, not exceptions."""
    ok: bool
    value: Optional[float] = None
    source: str = "local"
    error: Optional[str] = None
    fallback_used: bool = False

    @classmethod
    def success(cls, value: float, source: str) -> "ScoringOutcome":
        return cls(ok=True, value=value, source=source)

    @classmethod
    def failure(cls, error: str, source: str) -> "ScoringOutcome":
        return cls(ok=False, value=None, source=source, error=error)


class Scorer(ABC):
    """Scores a signal set, optionally using caller context"""

    name: str = "scorer"

    @abstractmethod
    def score(
        self,
        signals: BehavioralSignalSet,
        context: Optional[Dict[str, Any]] = None,
    ) -> ScoringOutcome:
        ...


class LocalScorer(Scorer):
    """Deterministic weighted model. Never fails for a valid signal set."""

    name = "local"

    def __init__(self, scorer: Optional[BehavioralScorer] = None):
        self.scorer = scorer or BehavioralScorer()

    def score(
        self,
        signals: BehavioralSignalSet,
        context: Optional[Dict[str, Any]] = None,
    ) -> ScoringOutcome:
        return ScoringOutcome.success(self.scorer.score(signals), self.name)


class RemoteEstimatorScorer(Scorer):
    """
    Scores via an external estimator.

    POSTs {"signals": {...}, "context": {...}} and expects {"score": float}
    in [0, 1]. Transport errors, non-2xx responses and malformed payloads are
    returned as failed outcomes.
    """

    name = "remote"

    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def score(
        self,
        signals: BehavioralSignalSet,
        context: Optional[Dict[str, Any]] = None,
    ) -> ScoringOutcome:
        payload = {"signals": signals.as_dict(), "context": dict(context or {})}

        try:
            if self._client is not None:
                response = self._client.post(
                    self.url, json=payload, headers=self._headers(), timeout=self.timeout
                )
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            return ScoringOutcome.failure(f"Estimator request failed: {e}", self.name)

        if response.status_code < 200 or response.status_code >= 300:
            return ScoringOutcome.failure(
                f"Estimator returned HTTP {response.status_code}", self.name
            )

        try:
            body = response.json()
        except ValueError:
            return ScoringOutcome.failure("Estimator returned invalid JSON", self.name)

        value = body.get("score") if isinstance(body, dict) else None
        if isinstance(value, bool) or not isinstance(value, (int, float)) \
                or math.isnan(value) or not 0.0 <= value <= 1.0:
            return ScoringOutcome.failure(f"Estimator returned invalid score: {value!r}", self.name)

        return ScoringOutcome.success(float(value), self.name)


class FallbackScorer(Scorer):
    """
    Uses the primary scorer; when it fails, the fallback's outcome is returned
    with fallback_used set and the primary's error kept.
    """

    name = "fallback"

    def __init__(self, primary: Scorer, fallback: Optional[Scorer] = None):
        self.primary = primary
        self.fallback = fallback or LocalScorer()

    def score(
        self,
        signals: BehavioralSignalSet,
        context: Optional[Dict[str, Any]] = None,
    ) -> ScoringOutcome:
        outcome = self.primary.score(signals, context)
        if outcome.ok:
            return outcome

        logger.warning(
            f"Scorer {self.primary.name} failed ({outcome.error}), using {self.fallback.name}"
        )
        secondary = self.fallback.score(signals, context)
        return ScoringOutcome(
            ok=secondary.ok,
            value=secondary.value,
            source=secondary.source,
            error=outcome.error if secondary.ok else secondary.error,
            fallback_used=True,
        )


def build_scorer(config: Settings) -> Scorer:
    """Scorer for the given settings: local only, or remote with local fallback"""
    if config.EXTERNAL_SCORER_ENABLED and config.EXTERNAL_SCORER_URL:
        remote = RemoteEstimatorScorer(
            url=config.EXTERNAL_SCORER_URL,
            api_key=config.EXTERNAL_SCORER_API_KEY,
            timeout=config.EXTERNAL_SCORER_TIMEOUT_SECONDS,
        )
        return FallbackScorer(remote, LocalScorer())
    return LocalScorer()


# ============================================================================
# Multi-competency aggregation
# ============================================================================

@dataclass
class CompetencyLevelRow:
    competency_id: str
    score: float
    level: CCISLevel
    industry_weight: float


@dataclass
class OverallLevelResult:
    """Industry-weighted view across several competencies"""
    overall_level: CCISLevel
    raw_score: float
    readiness_percentage: float
    strongest: Optional[Tuple[str, CCISLevel]]
    development_areas: List[str] = field(default_factory=list)
    competencies: List[CompetencyLevelRow] = field(default_factory=list)


def aggregate_overall_level(
    catalog: CompetencyCatalog,
    scores: Mapping[str, float],
    classifier: Optional[LevelClassifier] = None,
) -> OverallLevelResult:
    """
    Combine per-competency independence scores into an overall level.

    Scores are weighted by the catalog's industry weights, renormalized over
    the competencies supplied. Development areas are competencies below level 3.
    """
    if not scores:
        raise ValidationError("At least one competency score is required", "scores")

    classifier = classifier or LevelClassifier()
    rows: List[CompetencyLevelRow] = []

    for identifier, score in scores.items():
        competency_id = catalog.resolve_id(identifier)
        if isinstance(score, bool) or not isinstance(score, (int, float)) \
                or math.isnan(score) or not 0.0 <= score <= 1.0:
            raise InvalidSignalError(f"Score for {competency_id} must be between 0.0 and 1.0", competency_id)
        rows.append(CompetencyLevelRow(
            competency_id=competency_id,
            score=float(score),
            level=classifier.classify_score(score),
            industry_weight=catalog.industry_weight(competency_id),
        ))

    total_weight = sum(r.industry_weight for r in rows)
    raw_score = sum(r.score * r.industry_weight for r in rows) / total_weight
    raw_score = max(0.0, min(1.0, raw_score))

    strongest_row = max(rows, key=lambda r: (r.level.level, r.score))
    development_areas = [r.competency_id for r in rows if r.level.level < 3]

    return OverallLevelResult(
        overall_level=classifier.classify_score(raw_score),
        raw_score=raw_score,
        readiness_percentage=round(raw_score * 100, 2),
        strongest=(strongest_row.competency_id, strongest_row.level),
        development_areas=development_areas,
        competencies=rows,
    )
