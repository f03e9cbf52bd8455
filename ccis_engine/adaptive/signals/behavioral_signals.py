"""
Behavioral Signals - Independence Indicators from Task Interactions

Seven normalized signals describe how independently a learner worked through a
task. Each signal lies in [0, 1] and is oriented so that 1.0 is the most
independent behaviour (a learner who never needed a hint has a
hint-request-frequency signal of 1.0).

Weights (fixed):
1. Hint Request Frequency      35%  - primary independence indicator
2. Error Recovery Speed        25%  - self-correction capability
3. Transfer Success Rate       20%  - applying skills to novel problems
4. Metacognitive Accuracy      10%  - self-assessment vs. actual performance
5. Task Completion Efficiency   5%  - optimal vs. actual time
6. Help-Seeking Quality         3%  - strategic vs. generic questions
7. Self-Assessment Alignment    2%  - prediction accuracy

SignalNormalizer converts raw interaction metrics (hint counts, recovery
timings, transfer outcomes) into a BehavioralSignalSet.
"""
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple
import logging
import math
import warnings

from ccis_engine.core.exceptions import DataQualityWarning, InvalidSignalError

logger = logging.getLogger(__name__)


class SignalName(str, Enum):
    """Names of the seven behavioral signals"""
    HINT_REQUEST_FREQUENCY = "hint_request_frequency"
    ERROR_RECOVERY_SPEED = "error_recovery_speed"
    TRANSFER_SUCCESS_RATE = "transfer_success_rate"
    METACOGNITIVE_ACCURACY = "metacognitive_accuracy"
    TASK_COMPLETION_EFFICIENCY = "task_completion_efficiency"
    HELP_SEEKING_QUALITY = "help_seeking_quality"
    SELF_ASSESSMENT_ALIGNMENT = "self_assessment_alignment"


SIGNAL_WEIGHTS: Dict[SignalName, float] = {
    SignalName.HINT_REQUEST_FREQUENCY: 0.35,
    SignalName.ERROR_RECOVERY_SPEED: 0.25,
    SignalName.TRANSFER_SUCCESS_RATE: 0.20,
    SignalName.METACOGNITIVE_ACCURACY: 0.10,
    SignalName.TASK_COMPLETION_EFFICIENCY: 0.05,
    SignalName.HELP_SEEKING_QUALITY: 0.03,
    SignalName.SELF_ASSESSMENT_ALIGNMENT: 0.02,
}

WEIGHT_SUM_TOLERANCE = 0.01

if set(SIGNAL_WEIGHTS) != set(SignalName):
    raise RuntimeError("SIGNAL_WEIGHTS must cover every SignalName")
if abs(sum(SIGNAL_WEIGHTS.values()) - 1.0) > WEIGHT_SUM_TOLERANCE:
    raise RuntimeError("SIGNAL_WEIGHTS must sum to 1.0")

# camelCase keys used by upstream payloads
_CAMEL_CASE_KEYS: Dict[str, SignalName] = {
    "hintRequestFrequency": SignalName.HINT_REQUEST_FREQUENCY,
    "errorRecoverySpeed": SignalName.ERROR_RECOVERY_SPEED,
    "transferSuccessRate": SignalName.TRANSFER_SUCCESS_RATE,
    "metacognitiveAccuracy": SignalName.METACOGNITIVE_ACCURACY,
    "taskCompletionEfficiency": SignalName.TASK_COMPLETION_EFFICIENCY,
    "helpSeekingQuality": SignalName.HELP_SEEKING_QUALITY,
    "selfAssessmentAlignment": SignalName.SELF_ASSESSMENT_ALIGNMENT,
}

_SNAKE_CASE_KEYS = frozenset(name.value for name in SignalName)

# Below these values a signal indicates the learner is struggling
INTERVENTION_THRESHOLDS: Dict[SignalName, float] = {
    SignalName.HINT_REQUEST_FREQUENCY: 0.2,
    SignalName.ERROR_RECOVERY_SPEED: 0.2,
    SignalName.TRANSFER_SUCCESS_RATE: 0.3,
}


def _validate_signal(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidSignalError(f"{name} must be a valid number", name)
    value = float(value)
    if math.isnan(value) or math.isinf(value):
        raise InvalidSignalError(f"{name} must be a valid number", name)
    if value < 0.0 or value > 1.0:
        raise InvalidSignalError(f"{name} must be between 0.0 and 1.0", name)
    return value


@dataclass(frozen=True)
class BehavioralSignalSet:
    """Immutable set of the seven normalized behavioral signals"""
    hint_request_frequency: float
    error_recovery_speed: float
    transfer_success_rate: float
    metacognitive_accuracy: float
    task_completion_efficiency: float
    help_seeking_quality: float
    self_assessment_alignment: float

    def __post_init__(self):
        for f in fields(self):
            object.__setattr__(self, f.name, _validate_signal(f.name, getattr(self, f.name)))

    @classmethod
    def from_mapping(cls, data: Mapping[str, float]) -> "BehavioralSignalSet":
        """Build a signal set from snake_case or camelCase keys"""
        values: Dict[str, float] = {}
        for key, value in data.items():
            if key in _CAMEL_CASE_KEYS:
                values[_CAMEL_CASE_KEYS[key].value] = value
            elif key in _SNAKE_CASE_KEYS:
                values[key] = value

        missing = [name.value for name in SignalName if name.value not in values]
        if missing:
            raise InvalidSignalError(
                f"Missing behavioral signals: {', '.join(missing)}", missing[0]
            )
        return cls(**values)

    @classmethod
    def uniform(cls, value: float) -> "BehavioralSignalSet":
        """Signal set with every component set to the same value"""
        return cls(**{name.value: value for name in SignalName})

    def get(self, name: SignalName) -> float:
        return getattr(self, name.value)

    def as_dict(self) -> Dict[str, float]:
        return {name.value: self.get(name) for name in SignalName}

    def as_vector(self) -> List[float]:
        """Signal values in weight order"""
        return [self.get(name) for name in SignalName]

    def strongest_signal(self) -> Tuple[SignalName, float, float]:
        """(name, value, weight) of the highest signal"""
        name = max(SignalName, key=self.get)
        return name, self.get(name), SIGNAL_WEIGHTS[name]

    def weakest_signal(self) -> Tuple[SignalName, float, float]:
        """(name, value, weight) of the lowest signal"""
        name = min(SignalName, key=self.get)
        return name, self.get(name), SIGNAL_WEIGHTS[name]

    def needs_intervention(self) -> bool:
        """Two or more core signals below their struggle thresholds"""
        struggling = [
            self.get(name) < threshold
            for name, threshold in INTERVENTION_THRESHOLDS.items()
        ]
        return sum(struggling) >= 2


# ============================================================================
# Normalization from raw interaction metrics
# ============================================================================

@dataclass
class RawInteractionMetrics:
    """Raw counts and timings captured for one task interaction"""
    hints_requested: int
    total_available_hints: int
    error_recovery_time_ms: float
    max_recovery_time_ms: float
    transfer_tasks_successful: int
    total_transfer_tasks: int
    self_assessment_score: float
    actual_performance_score: float
    task_completion_time_ms: float
    optimal_completion_time_ms: float
    strategic_help_requests: int = 0
    total_help_requests: int = 0
    self_prediction_accuracy: float = 0.5


@dataclass
class NormalizationResult:
    """Normalized signals plus how complete the underlying raw data was"""
    signals: BehavioralSignalSet
    completeness: float  # share of signals computed from real data (0-1)
    warnings: List[str] = field(default_factory=list)


class SignalNormalizer:
    """
    Converts raw interaction metrics into a BehavioralSignalSet.

    Missing denominators do not block processing: the affected signal falls
    back to a neutral default, completeness drops, and a DataQualityWarning is
    emitted.
    """

    NEUTRAL_DEFAULT = 0.5

    def normalize(self, raw: RawInteractionMetrics) -> NormalizationResult:
        issues: List[str] = []

        def ratio(numerator: float, denominator: float, label: str, fallback_signal: float) -> Optional[float]:
            if denominator is None or denominator <= 0:
                issues.append(f"{label}: no denominator available, signal set to {fallback_signal}")
                return None
            return numerator / denominator

        self._check_non_negative(raw)

        # No hints on offer reads as fully independent
        hint_ratio = ratio(raw.hints_requested, raw.total_available_hints, "hint_request_frequency", 1.0)
        hint_request_frequency = 1.0 if hint_ratio is None else 1.0 - min(hint_ratio, 1.0)

        recovery_ratio = ratio(
            raw.error_recovery_time_ms, raw.max_recovery_time_ms,
            "error_recovery_speed", self.NEUTRAL_DEFAULT,
        )
        error_recovery_speed = (
            self.NEUTRAL_DEFAULT if recovery_ratio is None else 1.0 - min(recovery_ratio, 1.0)
        )

        transfer_ratio = ratio(
            raw.transfer_tasks_successful, raw.total_transfer_tasks,
            "transfer_success_rate", self.NEUTRAL_DEFAULT,
        )
        transfer_success_rate = self.NEUTRAL_DEFAULT if transfer_ratio is None else min(1.0, transfer_ratio)

        metacognitive_accuracy = 1.0 - abs(
            self._clamp(raw.self_assessment_score) - self._clamp(raw.actual_performance_score)
        )

        if raw.task_completion_time_ms and raw.task_completion_time_ms > 0:
            task_completion_efficiency = min(
                raw.optimal_completion_time_ms / raw.task_completion_time_ms, 1.0
            )
        else:
            issues.append(
                f"task_completion_efficiency: no completion time recorded, signal set to {self.NEUTRAL_DEFAULT}"
            )
            task_completion_efficiency = self.NEUTRAL_DEFAULT

        # No help requested at all counts as fully strategic
        if raw.total_help_requests > 0:
            help_seeking_quality = min(1.0, raw.strategic_help_requests / raw.total_help_requests)
        else:
            help_seeking_quality = 1.0

        signals = BehavioralSignalSet(
            hint_request_frequency=self._clamp(hint_request_frequency),
            error_recovery_speed=self._clamp(error_recovery_speed),
            transfer_success_rate=self._clamp(transfer_success_rate),
            metacognitive_accuracy=self._clamp(metacognitive_accuracy),
            task_completion_efficiency=self._clamp(task_completion_efficiency),
            help_seeking_quality=self._clamp(help_seeking_quality),
            self_assessment_alignment=self._clamp(raw.self_prediction_accuracy),
        )

        completeness = 1.0 - len(issues) / len(SignalName)
        for issue in issues:
            warnings.warn(issue, DataQualityWarning, stacklevel=2)
        if issues:
            logger.info(f"Normalized signals with completeness {completeness:.2f}: {issues}")

        return NormalizationResult(signals=signals, completeness=completeness, warnings=issues)

    @staticmethod
    def _clamp(value: float) -> float:
        return max(0.0, min(1.0, float(value)))

    @staticmethod
    def _check_non_negative(raw: RawInteractionMetrics) -> None:
        counts = {
            "hints_requested": raw.hints_requested,
            "error_recovery_time_ms": raw.error_recovery_time_ms,
            "transfer_tasks_successful": raw.transfer_tasks_successful,
            "task_completion_time_ms": raw.task_completion_time_ms,
            "optimal_completion_time_ms": raw.optimal_completion_time_ms,
            "strategic_help_requests": raw.strategic_help_requests,
            "total_help_requests": raw.total_help_requests,
        }
        for name, value in counts.items():
            if value is None or value < 0:
                raise InvalidSignalError(f"{name} must be a non-negative number", name)
