"""
Evidence Ledger

Append-only store of task evidence for one (person, competency) pair.

Each record is weighted by insertion order, w = exp(-decay * n) where n is the
number of records already in the ledger (excluded records included). Running
statistics are recomputed over the records that have not been excluded for
gaming risk; excluded records stay in the history for audit.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple
import logging
import math

import numpy as np

from ccis_engine.adaptive.signals.behavioral_signals import BehavioralSignalSet
from ccis_engine.adaptive.signals.scorer import BehavioralScorer
from ccis_engine.core.exceptions import InvalidEvidenceError
from ccis_engine.schemas.progression import GamingRiskResult

logger = logging.getLogger(__name__)

MAX_SCAFFOLDING = 5

# Averages are compared against >= thresholds; keep float noise below this out
STAT_PRECISION = 9


class ProgressTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    STAGNANT = "stagnant"


def _check_unit_interval(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) \
            or math.isnan(value) or not 0.0 <= value <= 1.0:
        raise InvalidEvidenceError(f"{name} must be between 0.0 and 1.0", name)
    return float(value)


@dataclass(frozen=True)
class TaskEvidence:
    """One scored task interaction"""
    task_interaction_id: str
    performance_score: float
    signals: BehavioralSignalSet
    confidence_score: float
    completion_time_ms: float
    scaffolding_used: int
    timestamp: datetime = field(default_factory=datetime.utcnow)
    evidence_weight: float = 1.0
    signal_score: Optional[float] = None
    scoring_source: str = "local"
    indicated_level: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.task_interaction_id, str) or not self.task_interaction_id:
            raise InvalidEvidenceError("task_interaction_id must be a non-empty string", "task_interaction_id")
        object.__setattr__(self, "performance_score", _check_unit_interval("performance_score", self.performance_score))
        object.__setattr__(self, "confidence_score", _check_unit_interval("confidence_score", self.confidence_score))

        if not isinstance(self.signals, BehavioralSignalSet):
            raise InvalidEvidenceError("signals must be a BehavioralSignalSet", "signals")
        if isinstance(self.completion_time_ms, bool) or not isinstance(self.completion_time_ms, (int, float)) \
                or math.isnan(self.completion_time_ms) or self.completion_time_ms < 0:
            raise InvalidEvidenceError("completion_time_ms must be a non-negative number", "completion_time_ms")
        if isinstance(self.scaffolding_used, bool) or not isinstance(self.scaffolding_used, int) \
                or not 0 <= self.scaffolding_used <= MAX_SCAFFOLDING:
            raise InvalidEvidenceError(
                f"scaffolding_used must be an integer between 0 and {MAX_SCAFFOLDING}", "scaffolding_used"
            )
        if not isinstance(self.timestamp, datetime):
            raise InvalidEvidenceError("timestamp must be a datetime", "timestamp")

        if self.signal_score is None:
            object.__setattr__(self, "signal_score", BehavioralScorer().score(self.signals))
        else:
            object.__setattr__(self, "signal_score", _check_unit_interval("signal_score", self.signal_score))


@dataclass(frozen=True)
class LedgerStatistics:
    """Running statistics over included evidence"""
    average_performance: float = 0.0
    performance_variance: float = 0.0
    consistency_score: float = 0.0
    improvement_rate: float = 0.0
    trend: ProgressTrend = ProgressTrend.STABLE
    plateau_risk: float = 0.0
    average_confidence: float = 0.0
    average_signal_strength: float = 0.0


def trend_slope(values: List[float]) -> float:
    """Least-squares slope of values against their index"""
    if len(values) < 2:
        return 0.0
    x = np.arange(len(values), dtype=float)
    slope, _ = np.polyfit(x, np.asarray(values, dtype=float), 1)
    return float(slope)


def stable_mean(values: List[float], weights: Optional[List[float]] = None) -> float:
    """Mean rounded to STAT_PRECISION so repeated equal values average to themselves"""
    return round(float(np.average(values, weights=weights)), STAT_PRECISION)


def population_variance(values: List[float]) -> float:
    if len(values) < 2:
        return 0.0
    return float(np.var(values))


class EvidenceLedger:
    """
    Ordered task evidence plus statistics over the non-excluded part.

    Not thread-safe on its own: the owning assessment serializes access.
    """

    VARIANCE_WINDOW = 10
    SLOPE_WINDOW = 5
    TREND_MIN_RECORDS = 3
    PLATEAU_WINDOW = 10

    TREND_THRESHOLDS = {
        "improving": 0.05,
        "declining": -0.05,
        "stagnant": 0.01,
    }

    def __init__(self, decay_rate: float = 0.1):
        self.decay_rate = decay_rate
        self._records: List[TaskEvidence] = []
        self._exclusions: Dict[str, GamingRiskResult] = {}
        self._statistics = LedgerStatistics()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def next_weight(self) -> float:
        return math.exp(-self.decay_rate * len(self._records))

    def add(self, evidence: TaskEvidence) -> TaskEvidence:
        """Append evidence, stamping its insertion-order weight"""
        if any(r.task_interaction_id == evidence.task_interaction_id for r in self._records):
            raise InvalidEvidenceError(
                f"Evidence {evidence.task_interaction_id} is already recorded", "task_interaction_id"
            )

        weighted = replace(evidence, evidence_weight=self.next_weight())
        self._records.append(weighted)
        self._recompute()

        logger.debug(
            f"Evidence {weighted.task_interaction_id} appended "
            f"(performance={weighted.performance_score:.2f}, weight={weighted.evidence_weight:.3f})"
        )
        return weighted

    def exclude(self, task_interaction_id: str, risk: GamingRiskResult) -> None:
        """Set evidence aside from statistics. It remains in the history."""
        if not any(r.task_interaction_id == task_interaction_id for r in self._records):
            raise InvalidEvidenceError(f"Unknown evidence {task_interaction_id}", "task_interaction_id")
        self._exclusions[task_interaction_id] = risk
        self._recompute()

    def copy(self) -> "EvidenceLedger":
        clone = EvidenceLedger(decay_rate=self.decay_rate)
        clone._records = list(self._records)
        clone._exclusions = dict(self._exclusions)
        clone._statistics = self._statistics
        return clone

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def task_evidence(self) -> Tuple[TaskEvidence, ...]:
        """Full history, excluded records included"""
        return tuple(self._records)

    @property
    def included_evidence(self) -> List[TaskEvidence]:
        return [r for r in self._records if r.task_interaction_id not in self._exclusions]

    @property
    def excluded_evidence(self) -> List[TaskEvidence]:
        return [r for r in self._records if r.task_interaction_id in self._exclusions]

    @property
    def statistics(self) -> LedgerStatistics:
        return self._statistics

    def is_excluded(self, task_interaction_id: str) -> bool:
        return task_interaction_id in self._exclusions

    def risk_for(self, task_interaction_id: str) -> Optional[GamingRiskResult]:
        return self._exclusions.get(task_interaction_id)

    def recent_performances(self, count: int) -> List[float]:
        included = self.included_evidence
        return [r.performance_score for r in included[-count:]] if count > 0 else []

    def span_days(self) -> float:
        """Days between the first and last included record"""
        included = self.included_evidence
        if len(included) < 2:
            return 0.0
        timestamps = [r.timestamp for r in included]
        return (max(timestamps) - min(timestamps)) / timedelta(days=1)

    def in_window(self, since: datetime) -> List[TaskEvidence]:
        return [r for r in self.included_evidence if r.timestamp >= since]

    def __len__(self) -> int:
        return len(self._records)

    # ------------------------------------------------------------------

    def _recompute(self) -> None:
        included = self.included_evidence
        if not included:
            self._statistics = LedgerStatistics()
            return

        performances = [r.performance_score for r in included]
        weights = [r.evidence_weight for r in included]

        average_performance = stable_mean(performances, weights)
        variance = population_variance(performances[-self.VARIANCE_WINDOW:])
        improvement_rate = (
            trend_slope(performances[-self.SLOPE_WINDOW:])
            if len(performances) >= self.SLOPE_WINDOW else 0.0
        )

        self._statistics = LedgerStatistics(
            average_performance=min(1.0, max(0.0, average_performance)),
            performance_variance=variance,
            consistency_score=max(0.0, 1.0 - variance),
            improvement_rate=improvement_rate,
            trend=self._trend(performances),
            plateau_risk=self._plateau_risk(performances),
            average_confidence=stable_mean([r.confidence_score for r in included]),
            average_signal_strength=stable_mean([r.signal_score for r in included]),
        )

    def _trend(self, performances: List[float]) -> ProgressTrend:
        if len(performances) < self.TREND_MIN_RECORDS:
            return ProgressTrend.STABLE

        slope = trend_slope(performances[-self.SLOPE_WINDOW:])
        if slope > self.TREND_THRESHOLDS["improving"]:
            return ProgressTrend.IMPROVING
        if slope < self.TREND_THRESHOLDS["declining"]:
            return ProgressTrend.DECLINING
        if abs(slope) < self.TREND_THRESHOLDS["stagnant"]:
            return ProgressTrend.STAGNANT
        return ProgressTrend.STABLE

    def _plateau_risk(self, performances: List[float]) -> float:
        if len(performances) < self.PLATEAU_WINDOW:
            return 0.0

        recent = performances[-self.PLATEAU_WINDOW:]
        variance_score = max(0.0, 1.0 - population_variance(recent) * 10)
        improvement_score = max(0.0, 1.0 - abs(trend_slope(recent)))
        return (variance_score + improvement_score) / 2
