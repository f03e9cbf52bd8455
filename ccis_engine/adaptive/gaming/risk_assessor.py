"""
Gaming Risk Assessment

Scores a session (or a batch of task evidence) for signs that results come from
exploiting the assessment rather than genuine skill.

Six weighted detectors:
1. Response-time outliers   25%  - answers too fast to be read, or absurdly slow
2. Timing regularity        20%  - mechanical, near-constant task timing
3. Answer-change frequency  20%  - answers flipped repeatedly per task
4. Signal variance          15%  - signal profile too flat, too erratic or too perfect
5. Performance pattern      10%  - error-free runs, hint usage inconsistent with results
6. Historical improvement   10%  - jump over the learner's historical average

A detector flags when its confidence exceeds 0.5. The risk score is the
weighted confidence of flagged detectors divided by the weight of detectors
that had data to evaluate, so a session without history is not diluted by the
historical detector.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import logging

import numpy as np

from ccis_engine.adaptive.progression.evidence_ledger import TaskEvidence
from ccis_engine.adaptive.progression.interventions import average_signals
from ccis_engine.adaptive.signals.behavioral_signals import BehavioralSignalSet
from ccis_engine.adaptive.signals.scorer import BehavioralScorer
from ccis_engine.core.exceptions import InvalidEvidenceError
from ccis_engine.schemas.progression import (
    DetectedPattern,
    GamingPatternType,
    GamingResponseAction,
    GamingRiskLevel,
    GamingRiskResult,
)

logger = logging.getLogger(__name__)


@dataclass
class GamingEvaluationInput:
    """Everything observed about one assessment session"""
    session_id: str
    signals: BehavioralSignalSet
    timing_pattern: List[float] = field(default_factory=list)  # seconds per task
    hint_usage_pattern: List[int] = field(default_factory=list)  # hints per task
    error_pattern: List[int] = field(default_factory=list)  # errors per task
    answer_changes: List[int] = field(default_factory=list)  # answer changes per task
    historical_average: Optional[float] = None  # previous average score for this competency
    environment_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DetectorResult:
    name: str
    evaluable: bool
    confidence: float = 0.0
    pattern_type: Optional[GamingPatternType] = None
    description: str = ""
    evidence: List[str] = field(default_factory=list)

    @property
    def flagged(self) -> bool:
        return self.evaluable and self.confidence > GamingRiskAssessor.FLAG_CONFIDENCE


class GamingRiskAssessor:
    """
    Session and evidence-batch gaming risk.

    Stateless: evaluate() can run on any thread.
    """

    DETECTOR_WEIGHTS = {
        "response_time": 0.25,
        "timing_regularity": 0.20,
        "answer_changes": 0.20,
        "signal_variance": 0.15,
        "performance_pattern": 0.10,
        "historical_improvement": 0.10,
    }

    THRESHOLDS = {
        "min_task_seconds": 10.0,
        "max_task_seconds": 1800.0,
        "fast_task_share": 0.3,
        "fast_task_share_severe": 0.6,
        "regular_cv": 0.15,
        "mechanical_cv": 0.05,
        "answer_changes_high": 2.0,
        "answer_changes_moderate": 1.0,
        "low_signal_variance": 0.05,
        "high_signal_variance": 0.4,
        "perfect_signal": 0.98,
        "error_free_share": 0.8,
        "pattern_repetition": 0.9,
        "impossible_improvement": 0.3,
    }

    FLAG_CONFIDENCE = 0.5

    RISK_LEVELS = [
        (0.8, GamingRiskLevel.CRITICAL),
        (0.6, GamingRiskLevel.HIGH),
        (0.4, GamingRiskLevel.MEDIUM),
        (0.2, GamingRiskLevel.LOW),
    ]

    ACTIONS = {
        GamingRiskLevel.CRITICAL: GamingResponseAction.INVALIDATE_SESSION,
        GamingRiskLevel.HIGH: GamingResponseAction.FLAG_FOR_REVIEW,
        GamingRiskLevel.MEDIUM: GamingResponseAction.EXTEND_ASSESSMENT,
        GamingRiskLevel.LOW: GamingResponseAction.MONITOR_CLOSELY,
        GamingRiskLevel.NONE: GamingResponseAction.NO_ACTION,
        GamingRiskLevel.UNKNOWN: GamingResponseAction.MONITOR_CLOSELY,
    }

    def __init__(self, high_risk_threshold: float = 0.7, scorer: Optional[BehavioralScorer] = None):
        self.high_risk_threshold = high_risk_threshold
        self.scorer = scorer or BehavioralScorer()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def evaluate(self, session: GamingEvaluationInput) -> GamingRiskResult:
        self._validate(session)

        results = [
            self._response_time_outliers(session),
            self._timing_regularity(session),
            self._answer_change_frequency(session),
            self._signal_variance(session),
            self._performance_pattern(session),
            self._historical_improvement(session),
        ]

        evaluable_weight = sum(self.DETECTOR_WEIGHTS[r.name] for r in results if r.evaluable)
        total_weight = sum(self.DETECTOR_WEIGHTS.values())
        flagged = [r for r in results if r.flagged]

        if evaluable_weight > 0:
            risk_score = sum(self.DETECTOR_WEIGHTS[r.name] * r.confidence for r in flagged) / evaluable_weight
        else:
            risk_score = 0.0
        risk_score = float(min(1.0, max(0.0, risk_score)))

        risk_level = self.risk_level(risk_score)
        requires_review = (
            risk_level in (GamingRiskLevel.HIGH, GamingRiskLevel.CRITICAL)
            or risk_score >= self.high_risk_threshold
        )

        evidence: List[str] = []
        for r in flagged:
            evidence.extend(r.evidence)

        if flagged:
            logger.info(
                f"Session {session.session_id}: risk {risk_score:.2f} ({risk_level.value}), "
                f"patterns {[r.pattern_type.value for r in flagged]}"
            )

        return GamingRiskResult(
            risk_score=risk_score,
            flagged_patterns=[r.pattern_type for r in flagged],
            confidence=evaluable_weight / total_weight,
            risk_level=risk_level,
            recommended_action=self.ACTIONS[risk_level],
            requires_human_review=requires_review,
            patterns=[
                DetectedPattern(
                    pattern_type=r.pattern_type,
                    confidence=r.confidence,
                    description=r.description,
                    evidence=r.evidence,
                )
                for r in flagged
            ],
            evidence=evidence,
            session_id=session.session_id,
        )

    def evaluate_evidence(
        self,
        evidence: Sequence[TaskEvidence],
        session_id: Optional[str] = None,
        historical_average: Optional[float] = None,
        answer_changes: Optional[List[int]] = None,
    ) -> GamingRiskResult:
        """
        Evaluate a batch of task evidence.

        Task timing comes from completion times, hint usage from scaffolding
        levels and the signal profile is the mean of the batch's signals.
        """
        if not evidence:
            raise InvalidEvidenceError("At least one evidence record is required", "evidence")

        session = GamingEvaluationInput(
            session_id=session_id or evidence[-1].task_interaction_id,
            signals=average_signals([e.signals for e in evidence]),
            timing_pattern=[e.completion_time_ms / 1000.0 for e in evidence],
            hint_usage_pattern=[e.scaffolding_used for e in evidence],
            answer_changes=list(answer_changes or []),
            historical_average=historical_average,
        )
        return self.evaluate(session)

    def risk_level(self, risk_score: float) -> GamingRiskLevel:
        for threshold, level in self.RISK_LEVELS:
            if risk_score >= threshold:
                return level
        return GamingRiskLevel.NONE

    # ------------------------------------------------------------------
    # Detectors
    # ------------------------------------------------------------------

    def _response_time_outliers(self, session: GamingEvaluationInput) -> DetectorResult:
        result = DetectorResult(name="response_time", evaluable=bool(session.timing_pattern))
        if not result.evaluable:
            return result

        timings = session.timing_pattern
        too_fast = [t for t in timings if t < self.THRESHOLDS["min_task_seconds"]]
        fast_share = len(too_fast) / len(timings)

        if fast_share >= self.THRESHOLDS["fast_task_share_severe"]:
            result.confidence = 0.9
        elif fast_share > self.THRESHOLDS["fast_task_share"]:
            result.confidence = 0.8
        if result.confidence:
            result.pattern_type = GamingPatternType.SPEED_GAMING
            result.description = "Multiple tasks completed suspiciously quickly"
            result.evidence.append(
                f"{len(too_fast)}/{len(timings)} tasks under {self.THRESHOLDS['min_task_seconds']:.0f} seconds"
            )

        # Slow tasks only count on a stable connection
        network = session.environment_metadata.get("network_stability")
        too_slow = [t for t in timings if t > self.THRESHOLDS["max_task_seconds"]]
        if too_slow and network != "poor" and result.confidence < 0.6:
            result.confidence = 0.6
            result.pattern_type = GamingPatternType.TIME_MANIPULATION
            result.description = "Some tasks took unusually long"
            result.evidence.append(
                f"{len(too_slow)} tasks over {self.THRESHOLDS['max_task_seconds'] / 60:.0f} minutes"
            )
        return result

    def _timing_regularity(self, session: GamingEvaluationInput) -> DetectorResult:
        timings = session.timing_pattern
        result = DetectorResult(name="timing_regularity", evaluable=len(timings) >= 3)
        if not result.evaluable:
            return result

        mean = float(np.mean(timings))
        if mean <= 0:
            result.evaluable = False
            return result

        cv = float(np.std(timings)) / mean
        if cv < self.THRESHOLDS["mechanical_cv"]:
            result.confidence = 0.9
        elif cv < self.THRESHOLDS["regular_cv"]:
            result.confidence = 0.7

        if result.confidence:
            result.pattern_type = GamingPatternType.PATTERN_REPETITION
            result.description = "Suspiciously regular timing pattern"
            result.evidence.append(f"Coefficient of variation: {cv:.3f} (expected: >{self.THRESHOLDS['regular_cv']})")
        return result

    def _answer_change_frequency(self, session: GamingEvaluationInput) -> DetectorResult:
        result = DetectorResult(name="answer_changes", evaluable=bool(session.answer_changes))
        if not result.evaluable:
            return result

        mean_changes = float(np.mean(session.answer_changes))
        if mean_changes > self.THRESHOLDS["answer_changes_high"]:
            result.confidence = 0.8
        elif mean_changes > self.THRESHOLDS["answer_changes_moderate"]:
            result.confidence = 0.6

        if result.confidence:
            result.pattern_type = GamingPatternType.ANSWER_CHANGING
            result.description = "Answers changed repeatedly before submission"
            result.evidence.append(f"Average answer changes per task: {mean_changes:.2f}")
        return result

    def _signal_variance(self, session: GamingEvaluationInput) -> DetectorResult:
        result = DetectorResult(name="signal_variance", evaluable=True)
        values = session.signals.as_vector()
        variance = float(np.var(values))

        if variance < self.THRESHOLDS["low_signal_variance"]:
            result.confidence = max(result.confidence, 0.8)
            result.description = "Suspiciously consistent signals across all dimensions"
            result.evidence.append(f"Signal variance: {variance:.4f} (threshold: {self.THRESHOLDS['low_signal_variance']})")

        if variance > self.THRESHOLDS["high_signal_variance"]:
            result.confidence = max(result.confidence, 0.6)
            result.description = "Extremely inconsistent signals"
            result.evidence.append(f"Signal variance: {variance:.4f} (threshold: {self.THRESHOLDS['high_signal_variance']})")

        perfect = [v for v in values if v > self.THRESHOLDS["perfect_signal"]]
        if len(perfect) >= 3:
            result.confidence = max(result.confidence, 0.9)
            result.description = "Multiple near-perfect signals"
            result.evidence.append(f"{len(perfect)} signals above {self.THRESHOLDS['perfect_signal']}")

        if result.confidence:
            result.pattern_type = GamingPatternType.VARIANCE_ANOMALY
        return result

    def _performance_pattern(self, session: GamingEvaluationInput) -> DetectorResult:
        result = DetectorResult(name="performance_pattern", evaluable=True)
        signals = session.signals

        def raise_to(confidence: float, pattern: GamingPatternType, description: str, note: str):
            if confidence > result.confidence:
                result.confidence = confidence
                result.pattern_type = pattern
                result.description = description
            result.evidence.append(note)

        hints = session.hint_usage_pattern
        if hints:
            avg_hints = float(np.mean(hints))
            # Hint independence near 1.0 with almost no hints suggests prior knowledge of the content
            if avg_hints < 0.5 and signals.hint_request_frequency > self.THRESHOLDS["perfect_signal"]:
                raise_to(0.7, GamingPatternType.HINT_ABUSE,
                         "Unusually low hint usage despite task complexity",
                         f"Average hints per task: {avg_hints:.2f}")
            if avg_hints > 5 and signals.transfer_success_rate > 0.9:
                raise_to(0.6, GamingPatternType.HINT_ABUSE,
                         "High hint usage with near-perfect transfer",
                         f"Average hints per task: {avg_hints:.2f} with 90%+ transfer success")

        errors = session.error_pattern
        if errors:
            error_free = sum(1 for e in errors if e == 0)
            if error_free > len(errors) * self.THRESHOLDS["error_free_share"]:
                raise_to(0.8, GamingPatternType.PERFECT_PERFORMANCE,
                         "Unusually high number of error-free task completions",
                         f"{error_free}/{len(errors)} tasks completed without errors")

        core = [
            signals.hint_request_frequency,
            signals.error_recovery_speed,
            signals.transfer_success_rate,
            signals.metacognitive_accuracy,
        ]
        consistency = max(0.0, 1.0 - float(np.var(core)) * 4)
        if consistency > self.THRESHOLDS["pattern_repetition"]:
            raise_to(0.7, GamingPatternType.PATTERN_REPETITION,
                     "Mechanical consistency in response patterns",
                     f"Performance consistency: {consistency * 100:.1f}%")
        return result

    def _historical_improvement(self, session: GamingEvaluationInput) -> DetectorResult:
        historical = session.historical_average
        result = DetectorResult(name="historical_improvement", evaluable=historical is not None)
        if not result.evaluable:
            return result

        current = self.scorer.score(session.signals)
        improvement = current - historical
        if improvement > self.THRESHOLDS["impossible_improvement"]:
            result.confidence = 0.8
            result.pattern_type = GamingPatternType.IMPOSSIBLE_IMPROVEMENT
            result.description = "Dramatic improvement beyond natural learning curve"
            result.evidence.append(
                f"Current score {current * 100:.1f}% vs historical average {historical * 100:.1f}%"
            )
        return result

    # ------------------------------------------------------------------

    @staticmethod
    def _validate(session: GamingEvaluationInput) -> None:
        for name in ("timing_pattern", "hint_usage_pattern", "error_pattern", "answer_changes"):
            values = getattr(session, name)
            if any(v is None or v < 0 for v in values):
                raise InvalidEvidenceError(f"{name} values must be non-negative", name)
        if session.historical_average is not None and not 0.0 <= session.historical_average <= 1.0:
            raise InvalidEvidenceError("historical_average must be between 0.0 and 1.0", "historical_average")
