"""
Assessment confidence score
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable
import math

from ccis_engine.core.exceptions import InvalidEvidenceError


class ConfidenceBand(str, Enum):
    """How reliable an assessment result is"""
    LOW = "low"              # needs more assessment data
    MODERATE = "moderate"    # acceptable for progression
    HIGH = "high"            # reliable assessment result
    VERY_HIGH = "very_high"  # expert-level certainty


LOW_THRESHOLD = 0.4
MODERATE_THRESHOLD = 0.7
HIGH_THRESHOLD = 0.9


@dataclass(frozen=True)
class ConfidenceScore:
    value: float  # 0-1

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)) \
                or math.isnan(self.value) or not 0.0 <= self.value <= 1.0:
            raise InvalidEvidenceError("Confidence score must be between 0.0 and 1.0", "confidence")
        object.__setattr__(self, "value", float(self.value))

    @classmethod
    def from_percentage(cls, percentage: float) -> "ConfidenceScore":
        if isinstance(percentage, bool) or not isinstance(percentage, (int, float)) \
                or math.isnan(percentage) or not 0.0 <= percentage <= 100.0:
            raise InvalidEvidenceError("Confidence percentage must be between 0 and 100", "confidence")
        return cls(percentage / 100.0)

    @classmethod
    def average(cls, scores: Iterable["ConfidenceScore"]) -> "ConfidenceScore":
        values = [s.value for s in scores]
        if not values:
            return cls(0.0)
        return cls(sum(values) / len(values))

    @property
    def percentage(self) -> int:
        return round(self.value * 100)

    @property
    def band(self) -> ConfidenceBand:
        if self.value < LOW_THRESHOLD:
            return ConfidenceBand.LOW
        if self.value < MODERATE_THRESHOLD:
            return ConfidenceBand.MODERATE
        if self.value < HIGH_THRESHOLD:
            return ConfidenceBand.HIGH
        return ConfidenceBand.VERY_HIGH

    def is_reliable(self) -> bool:
        return self.value >= MODERATE_THRESHOLD

    def needs_more_assessment(self) -> bool:
        return self.value < LOW_THRESHOLD
