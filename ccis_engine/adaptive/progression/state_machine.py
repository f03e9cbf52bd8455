"""
Progression State Machine

States of a competency assessment and the rules that move between them.

Precedence, evaluated top to bottom on every progress update:
1. level 4                                   -> MASTERED
2. certification criteria met and level >= 3 -> CERTIFICATION_READY
3. plateau risk >= 0.7                       -> PLATEAU
4. trend improving and advancement criteria  -> ADVANCING
5. otherwise                                 -> IN_PROGRESS

Advancement criteria depend on the level being left:

    from  min tasks  min perf  min conf  window  min signal
      1       5        0.60      0.50     3 d      0.50
      2      10        0.70      0.60     7 d      0.60
      3      15        0.85      0.80    14 d      0.80
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
import logging

from .evidence_ledger import EvidenceLedger, ProgressTrend, population_variance

logger = logging.getLogger(__name__)


class AssessmentState(str, Enum):
    INITIAL = "initial"
    IN_PROGRESS = "in_progress"
    ADVANCING = "advancing"
    PLATEAU = "plateau"
    LEVEL_ACHIEVED = "level_achieved"
    CERTIFICATION_READY = "certification_ready"
    MASTERED = "mastered"  # terminal


@dataclass(frozen=True)
class AdvancementCriteria:
    min_task_count: int
    min_performance: float
    min_confidence: float
    min_consistency_days: int
    min_signal_strength: float


ADVANCEMENT_CRITERIA: Dict[int, AdvancementCriteria] = {
    1: AdvancementCriteria(5, 0.60, 0.50, 3, 0.50),
    2: AdvancementCriteria(10, 0.70, 0.60, 7, 0.60),
    3: AdvancementCriteria(15, 0.85, 0.80, 14, 0.80),
}


@dataclass
class CriterionResult:
    name: str
    required: float
    actual: float
    met: bool


@dataclass
class AdvancementCheck:
    """Per-criterion advancement report for one level"""
    from_level: int
    criteria: List[CriterionResult] = field(default_factory=list)

    @property
    def met(self) -> bool:
        return bool(self.criteria) and all(c.met for c in self.criteria)

    @property
    def failed(self) -> List[str]:
        return [c.name for c in self.criteria if not c.met]


class ProgressionStateMachine:
    """Stateless rules; the assessment owns the state itself"""

    PLATEAU_RISK_THRESHOLD = 0.7
    PLATEAU_WINDOW = 10
    PLATEAU_VARIANCE = 0.01
    PLATEAU_IMPROVEMENT = 0.01
    CONSISTENCY_VARIANCE = 0.05
    CERTIFICATION_MIN_LEVEL = 3

    def __init__(self, criteria: Optional[Dict[int, AdvancementCriteria]] = None):
        self.criteria = dict(criteria or ADVANCEMENT_CRITERIA)

    def evaluate_advancement(self, level: int, ledger: EvidenceLedger) -> AdvancementCheck:
        criteria = self.criteria.get(level)
        check = AdvancementCheck(from_level=level)
        if criteria is None:
            return check

        stats = ledger.statistics
        included = len(ledger.included_evidence)
        span = ledger.span_days()

        check.criteria = [
            CriterionResult("min_task_count", criteria.min_task_count, included,
                            included >= criteria.min_task_count),
            CriterionResult("min_performance", criteria.min_performance, stats.average_performance,
                            stats.average_performance >= criteria.min_performance),
            CriterionResult("min_confidence", criteria.min_confidence, stats.average_confidence,
                            stats.average_confidence >= criteria.min_confidence),
            CriterionResult("consistency_window", criteria.min_consistency_days, span,
                            self.consistency_window_met(ledger, criteria)),
            CriterionResult("min_signal_strength", criteria.min_signal_strength, stats.average_signal_strength,
                            stats.average_signal_strength >= criteria.min_signal_strength),
        ]

        if not check.met:
            logger.debug(f"Advancement from level {level} blocked by {check.failed}")
        return check

    def consistency_window_met(self, ledger: EvidenceLedger, criteria: AdvancementCriteria) -> bool:
        """Evidence spans the window and the recent performances agree"""
        if ledger.span_days() < criteria.min_consistency_days:
            return False
        recent = ledger.recent_performances(criteria.min_task_count)
        if len(recent) < 2:
            return False
        return population_variance(recent) < self.CONSISTENCY_VARIANCE

    def plateau_detected(self, ledger: EvidenceLedger) -> bool:
        """Flat, non-improving recent performance"""
        recent = ledger.recent_performances(self.PLATEAU_WINDOW)
        if len(recent) < self.PLATEAU_WINDOW:
            return False
        return (
            population_variance(recent) < self.PLATEAU_VARIANCE
            and ledger.statistics.improvement_rate < self.PLATEAU_IMPROVEMENT
        )

    def next_state(self, level: int, ledger: EvidenceLedger, certification_ready: bool) -> AssessmentState:
        if level >= 4:
            return AssessmentState.MASTERED
        if certification_ready and level >= self.CERTIFICATION_MIN_LEVEL:
            return AssessmentState.CERTIFICATION_READY
        if ledger.statistics.plateau_risk >= self.PLATEAU_RISK_THRESHOLD:
            return AssessmentState.PLATEAU
        if ledger.statistics.trend == ProgressTrend.IMPROVING \
                and self.evaluate_advancement(level, ledger).met:
            return AssessmentState.ADVANCING
        return AssessmentState.IN_PROGRESS
