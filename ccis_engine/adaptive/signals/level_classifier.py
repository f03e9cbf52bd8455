"""
CCIS Level Classification

Four disjoint percentage ranges, half-open on the upper bound except level 4:

    Level 1  [0, 25)    Dependent Learner        - high scaffolding needed
    Level 2  [25, 50)   Guided Practitioner      - moderate scaffolding
    Level 3  [50, 85)   Self-directed Performer  - minimal scaffolding
    Level 4  [85, 100]  Autonomous Expert        - no scaffolding
"""
from dataclasses import dataclass
from functools import total_ordering
from typing import Dict, Tuple
import math

from ccis_engine.core.exceptions import InvalidLevelError

MIN_LEVEL = 1
MAX_LEVEL = 4

LEVEL_RANGES: Dict[int, Tuple[float, float]] = {
    1: (0.0, 25.0),
    2: (25.0, 50.0),
    3: (50.0, 85.0),
    4: (85.0, 100.0),
}

LEVEL_DISPLAY_NAMES: Dict[int, str] = {
    1: "Dependent Learner",
    2: "Guided Practitioner",
    3: "Self-directed Performer",
    4: "Autonomous Expert",
}

LEVEL_DESCRIPTIONS: Dict[int, str] = {
    1: "0-25% mastery with high scaffolding needed",
    2: "25-50% mastery with moderate scaffolding needed",
    3: "50-85% mastery with minimal scaffolding needed",
    4: "85-100% mastery with no scaffolding needed",
}


def _in_range(level: int, percentage: float) -> bool:
    low, high = LEVEL_RANGES[level]
    if level == MAX_LEVEL:
        return low <= percentage <= high
    return low <= percentage < high


@total_ordering
@dataclass(frozen=True)
class CCISLevel:
    """A CCIS level with the percentage that placed the learner there"""
    level: int
    percentage: float

    def __post_init__(self):
        if isinstance(self.level, bool) or not isinstance(self.level, int) \
                or not MIN_LEVEL <= self.level <= MAX_LEVEL:
            raise InvalidLevelError(
                f"CCIS level must be an integer between {MIN_LEVEL} and {MAX_LEVEL}", "level"
            )
        if not isinstance(self.percentage, (int, float)) or math.isnan(self.percentage) \
                or not _in_range(self.level, self.percentage):
            low, high = LEVEL_RANGES[self.level]
            raise InvalidLevelError(
                f"Percentage {self.percentage} is outside the range [{low}, {high}) of level {self.level}",
                "percentage",
            )
        object.__setattr__(self, "percentage", float(self.percentage))

    @classmethod
    def from_level(cls, level: int) -> "CCISLevel":
        """Level at the bottom of its percentage range"""
        if level not in LEVEL_RANGES:
            raise InvalidLevelError(
                f"CCIS level must be an integer between {MIN_LEVEL} and {MAX_LEVEL}", "level"
            )
        return cls(level=level, percentage=LEVEL_RANGES[level][0])

    @property
    def display_name(self) -> str:
        return LEVEL_DISPLAY_NAMES[self.level]

    @property
    def description(self) -> str:
        return LEVEL_DESCRIPTIONS[self.level]

    @property
    def percentage_range(self) -> Tuple[float, float]:
        return LEVEL_RANGES[self.level]

    @property
    def is_max(self) -> bool:
        return self.level == MAX_LEVEL

    @property
    def is_min(self) -> bool:
        return self.level == MIN_LEVEL

    def can_advance_to(self, other: "CCISLevel") -> bool:
        """Normal advancement moves exactly one level"""
        return other.level == self.level + 1

    def next_level(self) -> "CCISLevel":
        if self.is_max:
            raise InvalidLevelError("Level 4 is the highest CCIS level", "level")
        return CCISLevel.from_level(self.level + 1)

    def __lt__(self, other: "CCISLevel") -> bool:
        if not isinstance(other, CCISLevel):
            return NotImplemented
        return self.level < other.level

    def __eq__(self, other) -> bool:
        if not isinstance(other, CCISLevel):
            return NotImplemented
        return self.level == other.level

    def __hash__(self) -> int:
        return hash(self.level)

    def __int__(self) -> int:
        return self.level

    def __str__(self) -> str:
        return f"Level {self.level}: {self.display_name}"


class LevelClassifier:
    """Maps a percentage in [0, 100] to its CCIS level"""

    def classify(self, percentage: float) -> CCISLevel:
        if isinstance(percentage, bool) or not isinstance(percentage, (int, float)) \
                or math.isnan(percentage):
            raise InvalidLevelError("Percentage must be a number", "percentage")
        if percentage < 0.0 or percentage > 100.0:
            raise InvalidLevelError(
                f"Percentage must be between 0 and 100, got {percentage}", "percentage"
            )

        for level in range(MIN_LEVEL, MAX_LEVEL + 1):
            if _in_range(level, percentage):
                return CCISLevel(level=level, percentage=percentage)

        # Unreachable: the ranges cover [0, 100]
        raise InvalidLevelError(f"No level owns percentage {percentage}", "percentage")

    def classify_score(self, score: float) -> CCISLevel:
        """Classify a [0, 1] score"""
        if isinstance(score, bool) or not isinstance(score, (int, float)) or math.isnan(score):
            raise InvalidLevelError("Score must be a number", "score")
        # Keep rounding noise from pushing exact boundaries down a level
        return self.classify(round(score * 100.0, 9))
