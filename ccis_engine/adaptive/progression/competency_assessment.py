"""
Competency Assessment Aggregate

One learner's progression through the CCIS levels for one competency. The
aggregate owns its evidence ledger, state, level history, plateau periods and
intervention history, and is the unit of consistency:

- every mutator runs under the aggregate's lock
- mutators compute into a draft and commit in one step, so an error leaves
  the aggregate exactly as it was
- each commit bumps `version`, which repositories use for optimistic saves

Domain events raised by commits are queued and drained with pull_events().
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union
import logging
import threading
import uuid

from ccis_engine.adaptive.signals.behavioral_signals import BehavioralSignalSet
from ccis_engine.adaptive.signals.level_classifier import CCISLevel, LevelClassifier, MAX_LEVEL
from ccis_engine.core.exceptions import (
    BusinessRuleViolation,
    CriteriaNotMetError,
    EvidenceOnMasteredAssessmentError,
    GamingRiskFlag,
    InvalidEvidenceError,
    InvalidTargetLevelError,
    ValidationError,
)
from ccis_engine.schemas.progression import (
    AssessmentSummary,
    CertificationEvidencePackage,
    GamingRiskResult,
    InterventionRecommendation,
    InterventionType,
)

from .certification import CertificationEvidenceBuilder, ReadinessCheck, evaluate_readiness
from .evidence_ledger import EvidenceLedger, TaskEvidence
from .interventions import average_signals, recommend_intervention
from .state_machine import AdvancementCheck, AssessmentState, ProgressionStateMachine

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


# ============================================================================
# Metadata
# ============================================================================

class CulturalContext(str, Enum):
    INDIA = "india"
    UAE = "uae"
    INTERNATIONAL = "international"


class LearningStyle(str, Enum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    KINESTHETIC = "kinesthetic"
    MIXED = "mixed"


class PriorExperience(str, Enum):
    NONE = "none"
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class AssessmentMode(str, Enum):
    SELF_PACED = "self_paced"
    GUIDED = "guided"
    STRUCTURED = "structured"
    ADAPTIVE = "adaptive"


@dataclass(frozen=True)
class AssessmentMetadata:
    cultural_context: CulturalContext = CulturalContext.INTERNATIONAL
    learning_style: LearningStyle = LearningStyle.MIXED
    prior_experience: PriorExperience = PriorExperience.NONE
    assessment_mode: AssessmentMode = AssessmentMode.ADAPTIVE
    intervention_preferences: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, str]]) -> "AssessmentMetadata":
        """Build metadata from loose strings; unknown values are rejected"""
        data = dict(data or {})
        enums = {
            "cultural_context": CulturalContext,
            "learning_style": LearningStyle,
            "prior_experience": PriorExperience,
            "assessment_mode": AssessmentMode,
        }
        values = {}
        for key, enum_cls in enums.items():
            if key in data and data[key] is not None:
                try:
                    values[key] = enum_cls(str(data[key]).strip().lower())
                except ValueError:
                    raise ValidationError(f"Invalid {key}: {data[key]}", key) from None
        values["intervention_preferences"] = tuple(data.get("intervention_preferences", ()))
        return cls(**values)


@dataclass
class PlateauPeriod:
    start: datetime
    end: Optional[datetime] = None
    interventions: List[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.end is None


# ============================================================================
# Domain events
# ============================================================================

@dataclass(frozen=True)
class DomainEvent:
    assessment_id: str
    person_id: str
    competency_id: str
    occurred_at: datetime


@dataclass(frozen=True)
class LevelAchieved(DomainEvent):
    previous_level: int = 0
    new_level: int = 0


@dataclass(frozen=True)
class PlateauDetected(DomainEvent):
    plateau_risk: float = 0.0


@dataclass(frozen=True)
class PlateauResolved(DomainEvent):
    intervention: Optional[str] = None


@dataclass(frozen=True)
class GamingRiskDetected(DomainEvent):
    task_interaction_id: str = ""
    risk_score: float = 0.0
    patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CertificationReadinessReached(DomainEvent):
    level: int = 0


# ============================================================================
# Aggregate
# ============================================================================

@dataclass
class _Draft:
    """Uncommitted copy of the aggregate's mutable state"""
    ledger: EvidenceLedger
    level: CCISLevel
    state: AssessmentState
    level_achievements: Dict[int, datetime]
    plateau_periods: List[PlateauPeriod]
    intervention_history: List[str]
    gaming_flags: List[GamingRiskFlag]
    requires_human_review: bool
    events: List[DomainEvent] = field(default_factory=list)


class CompetencyAssessment:
    """Aggregate root for one (person, competency) progression"""

    def __init__(
        self,
        person_id: str,
        competency_id: str,
        initial_level: int = 1,
        target_level: int = MAX_LEVEL,
        metadata: Optional[AssessmentMetadata] = None,
        assessment_id: Optional[str] = None,
        decay_rate: float = 0.1,
        high_risk_threshold: float = 0.7,
        clock: Optional[Clock] = None,
        state_machine: Optional[ProgressionStateMachine] = None,
        classifier: Optional[LevelClassifier] = None,
        certification_builder: Optional[CertificationEvidenceBuilder] = None,
    ):
        if not isinstance(person_id, str) or not person_id.strip():
            raise ValidationError("Person ID must be a non-empty string", "personId")
        if not isinstance(competency_id, str) or not competency_id.strip():
            raise ValidationError("Competency ID must be a non-empty string", "competencyId")

        initial = CCISLevel.from_level(initial_level)
        target = CCISLevel.from_level(target_level)
        if target.level <= initial.level:
            raise InvalidTargetLevelError(
                f"Target level {target.level} must be above the initial level {initial.level}", "targetLevel"
            )

        self._clock: Clock = clock or datetime.utcnow
        self._lock = threading.RLock()
        self._state_machine = state_machine or ProgressionStateMachine()
        self._classifier = classifier or LevelClassifier()
        self._certification_builder = certification_builder or CertificationEvidenceBuilder()
        self.high_risk_threshold = high_risk_threshold

        self.id = assessment_id or str(uuid.uuid4())
        self.person_id = person_id
        self.competency_id = competency_id
        self.metadata = metadata or AssessmentMetadata()
        self.initial_level = initial
        self.target_level = target
        self.created_at = self._clock()
        self.last_updated = self.created_at
        self.version = 0

        self._ledger = EvidenceLedger(decay_rate=decay_rate)
        self._level = initial
        self._state = AssessmentState.INITIAL
        self._level_achievements: Dict[int, datetime] = {initial.level: self.created_at}
        self._plateau_periods: List[PlateauPeriod] = []
        self._intervention_history: List[str] = []
        self._gaming_flags: List[GamingRiskFlag] = []
        self._requires_human_review = False
        self._events: List[DomainEvent] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    @property
    def current_level(self) -> CCISLevel:
        return self._level

    @property
    def state(self) -> AssessmentState:
        return self._state

    @property
    def ledger(self) -> EvidenceLedger:
        return self._ledger

    @property
    def task_evidence(self) -> Tuple[TaskEvidence, ...]:
        return self._ledger.task_evidence

    @property
    def average_performance(self) -> float:
        return self._ledger.statistics.average_performance

    @property
    def level_achievements(self) -> Dict[int, datetime]:
        return dict(self._level_achievements)

    @property
    def plateau_periods(self) -> List[PlateauPeriod]:
        return [
            PlateauPeriod(start=p.start, end=p.end, interventions=list(p.interventions))
            for p in self._plateau_periods
        ]

    @property
    def intervention_history(self) -> List[str]:
        return list(self._intervention_history)

    @property
    def gaming_flags(self) -> List[GamingRiskFlag]:
        return list(self._gaming_flags)

    @property
    def requires_human_review(self) -> bool:
        return self._requires_human_review

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def add_task_evidence(
        self,
        performance_score: float,
        signals: Union[BehavioralSignalSet, Mapping[str, float]],
        confidence: float,
        completion_time_ms: float,
        scaffolding_level: int,
        task_interaction_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        signal_score: Optional[float] = None,
        scoring_source: str = "local",
        gaming_risk: Optional[GamingRiskResult] = None,
    ) -> TaskEvidence:
        """
        Record one task interaction and re-evaluate state.

        Evidence whose gaming risk reaches the high-risk threshold is kept in
        the history but excluded from statistics, and the assessment is
        marked for human review.
        """
        with self._lock:
            if self._state == AssessmentState.MASTERED:
                raise EvidenceOnMasteredAssessmentError(
                    "Cannot add evidence to a mastered competency assessment", "assessmentState"
                )

            if not isinstance(signals, BehavioralSignalSet):
                if not isinstance(signals, Mapping):
                    raise InvalidEvidenceError("signals must be a BehavioralSignalSet or a mapping", "signals")
                signals = BehavioralSignalSet.from_mapping(signals)

            now = self._clock()
            evidence = TaskEvidence(
                task_interaction_id=task_interaction_id or str(uuid.uuid4()),
                performance_score=performance_score,
                signals=signals,
                confidence_score=confidence,
                completion_time_ms=completion_time_ms,
                scaffolding_used=scaffolding_level,
                timestamp=timestamp or now,
                signal_score=signal_score,
                scoring_source=scoring_source,
            )
            if evidence.timestamp > now:
                raise InvalidEvidenceError("Evidence timestamp cannot be in the future", "timestamp")
            evidence = replace(
                evidence, indicated_level=self._classifier.classify_score(evidence.signal_score).level
            )

            draft = self._draft()
            recorded = draft.ledger.add(evidence)

            if gaming_risk is not None and gaming_risk.risk_score >= self.high_risk_threshold:
                draft.ledger.exclude(recorded.task_interaction_id, gaming_risk)
                draft.requires_human_review = True
                patterns = [p.value for p in gaming_risk.flagged_patterns]
                draft.gaming_flags.append(GamingRiskFlag(
                    task_interaction_id=recorded.task_interaction_id,
                    risk_score=gaming_risk.risk_score,
                    patterns=patterns,
                    flagged_at=now,
                ))
                draft.events.append(GamingRiskDetected(
                    **self._event_base(now),
                    task_interaction_id=recorded.task_interaction_id,
                    risk_score=gaming_risk.risk_score,
                    patterns=tuple(patterns),
                ))
                logger.warning(
                    f"Evidence {recorded.task_interaction_id} excluded for {self.person_id}/{self.competency_id}: "
                    f"gaming risk {gaming_risk.risk_score:.2f}"
                )

            self._evaluate_state(draft, now, detect_plateau=True)
            self._commit(draft, now)
            return recorded

    def update_progress(self) -> AssessmentState:
        """Re-evaluate the state from the current evidence"""
        with self._lock:
            if self._state == AssessmentState.MASTERED:
                return self._state
            if self._state == AssessmentState.INITIAL and len(self._ledger) == 0:
                return self._state

            now = self._clock()
            draft = self._draft()
            self._evaluate_state(draft, now)
            self._commit(draft, now)
            return self._state

    def advance_to_next_level(self) -> CCISLevel:
        """Move up exactly one level once every advancement criterion holds"""
        with self._lock:
            self._ensure_active()
            check = self.evaluate_advancement()
            if not check.met:
                raise CriteriaNotMetError(
                    f"Level advancement criteria not met: {', '.join(check.failed) or 'no higher level'}",
                    check.failed,
                )

            now = self._clock()
            draft = self._draft()
            previous = draft.level
            draft.level = previous.next_level()
            draft.level_achievements[draft.level.level] = now
            draft.events.append(LevelAchieved(
                **self._event_base(now), previous_level=previous.level, new_level=draft.level.level,
            ))

            new_state = AssessmentState.LEVEL_ACHIEVED
            if draft.level.is_max:
                new_state = AssessmentState.MASTERED
            elif self._readiness(draft.level, draft.ledger, now).ready:
                new_state = AssessmentState.CERTIFICATION_READY
            self._transition(draft, new_state, now)

            logger.info(
                f"{self.person_id}/{self.competency_id} advanced from level {previous.level} "
                f"to level {draft.level.level}"
            )
            self._commit(draft, now)
            return self._level

    def apply_intervention(self, intervention_type: Union[InterventionType, str], data: Optional[dict] = None) -> None:
        """Record an intervention. Applied during a plateau it closes the plateau."""
        with self._lock:
            self._ensure_active()
            intervention = InterventionType.parse(intervention_type)
            now = self._clock()
            draft = self._draft()

            draft.intervention_history.append(f"{intervention.value}:{now.isoformat()}")
            if draft.state == AssessmentState.PLATEAU:
                period = self._open_period(draft)
                if period is not None:
                    period.end = now
                    period.interventions.append(intervention.value)
                draft.state = AssessmentState.IN_PROGRESS
                draft.events.append(PlateauResolved(**self._event_base(now), intervention=intervention.value))
                logger.info(f"Plateau closed for {self.person_id}/{self.competency_id} by {intervention.value}")

            self._commit(draft, now)

    def pull_events(self) -> List[DomainEvent]:
        with self._lock:
            events, self._events = self._events, []
            return events

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def evaluate_advancement(self) -> AdvancementCheck:
        with self._lock:
            return self._state_machine.evaluate_advancement(self._level.level, self._ledger)

    def can_advance_level(self) -> bool:
        return self.evaluate_advancement().met

    def certification_readiness(self) -> ReadinessCheck:
        with self._lock:
            return self._readiness(self._level, self._ledger, self._clock())

    def is_certification_ready(self) -> bool:
        return self.certification_readiness().ready

    def generate_certification_evidence(self) -> CertificationEvidencePackage:
        with self._lock:
            return self._certification_builder.generate(self)

    def recommend_intervention(self) -> Optional[InterventionRecommendation]:
        """Recommendation for the recent signal profile, None before any included evidence"""
        with self._lock:
            recent = self._ledger.included_evidence[-self._state_machine.PLATEAU_WINDOW:]
            if not recent:
                return None
            return recommend_intervention(
                average_signals([e.signals for e in recent]), self.metadata.cultural_context
            )

    def progress_percentage(self) -> float:
        current = self._level.level
        target = self.target_level.level
        if current >= target:
            return 100.0

        base = (current - 1) / (target - 1) * 100
        criteria = self._state_machine.criteria.get(current)
        if criteria is None:
            return base

        stats = self._ledger.statistics
        task_progress = min(1.0, len(self._ledger.included_evidence) / criteria.min_task_count)
        performance_progress = min(1.0, stats.average_performance / criteria.min_performance)
        within_level = (task_progress + performance_progress) / 2
        return min(100.0, base + within_level * (100 / (target - 1)))

    def get_assessment_summary(self) -> AssessmentSummary:
        with self._lock:
            now = self._clock()
            stats = self._ledger.statistics
            included = self._ledger.included_evidence
            signal_level = (
                self._classifier.classify_score(stats.average_signal_strength).level if included else None
            )
            return AssessmentSummary(
                assessment_id=self.id,
                person_id=self.person_id,
                competency_id=self.competency_id,
                current_level=self._level.level,
                level_name=self._level.display_name,
                target_level=self.target_level.level,
                state=self._state.value,
                progress_percentage=round(self.progress_percentage(), 2),
                evidence_count=len(self._ledger),
                included_evidence_count=len(included),
                excluded_evidence_count=len(self._ledger.excluded_evidence),
                average_performance=stats.average_performance,
                average_confidence=stats.average_confidence,
                average_signal_strength=stats.average_signal_strength,
                signal_level=signal_level,
                trend=stats.trend.value,
                plateau_risk=min(1.0, stats.plateau_risk),
                certification_ready=self._readiness(self._level, self._ledger, now).ready,
                requires_human_review=self._requires_human_review,
                days_in_assessment=max(0, (now - self.created_at) // timedelta(days=1)),
                last_updated=self.last_updated,
                recommended_intervention=(
                    self.recommend_intervention() if self._state == AssessmentState.PLATEAU else None
                ),
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_active(self) -> None:
        if self._state == AssessmentState.MASTERED:
            raise BusinessRuleViolation("Cannot modify a mastered competency assessment", "assessmentState")

    def _readiness(self, level: CCISLevel, ledger: EvidenceLedger, now: datetime) -> ReadinessCheck:
        return evaluate_readiness(level.level, ledger, now, self._certification_builder.criteria)

    def _event_base(self, now: datetime) -> dict:
        return {
            "assessment_id": self.id,
            "person_id": self.person_id,
            "competency_id": self.competency_id,
            "occurred_at": now,
        }

    def _draft(self) -> _Draft:
        return _Draft(
            ledger=self._ledger.copy(),
            level=self._level,
            state=self._state,
            level_achievements=dict(self._level_achievements),
            plateau_periods=self.plateau_periods,
            intervention_history=list(self._intervention_history),
            gaming_flags=list(self._gaming_flags),
            requires_human_review=self._requires_human_review,
        )

    @staticmethod
    def _open_period(draft: _Draft) -> Optional[PlateauPeriod]:
        for period in reversed(draft.plateau_periods):
            if period.is_open:
                return period
        return None

    def _evaluate_state(self, draft: _Draft, now: datetime, detect_plateau: bool = False) -> None:
        readiness = self._readiness(draft.level, draft.ledger, now)
        new_state = self._state_machine.next_state(draft.level.level, draft.ledger, readiness.ready)

        if detect_plateau and new_state in (AssessmentState.IN_PROGRESS, AssessmentState.ADVANCING) \
                and self._state_machine.plateau_detected(draft.ledger):
            new_state = AssessmentState.PLATEAU

        self._transition(draft, new_state, now)

    def _transition(self, draft: _Draft, new_state: AssessmentState, now: datetime) -> None:
        """Apply a rule-driven state change, keeping plateau periods in step"""
        old_state = draft.state

        if new_state == AssessmentState.PLATEAU and self._open_period(draft) is None:
            draft.plateau_periods.append(PlateauPeriod(start=now))
            draft.events.append(PlateauDetected(
                **self._event_base(now), plateau_risk=draft.ledger.statistics.plateau_risk,
            ))
            logger.info(f"Plateau detected for {self.person_id}/{self.competency_id}")
        elif new_state != AssessmentState.PLATEAU:
            period = self._open_period(draft)
            if period is not None:
                period.end = now
                draft.events.append(PlateauResolved(**self._event_base(now)))
                logger.info(f"Plateau closed for {self.person_id}/{self.competency_id} without intervention")

        if new_state == AssessmentState.CERTIFICATION_READY and old_state != AssessmentState.CERTIFICATION_READY:
            draft.events.append(CertificationReadinessReached(**self._event_base(now), level=draft.level.level))

        draft.state = new_state

    def _commit(self, draft: _Draft, now: datetime) -> None:
        self._ledger = draft.ledger
        self._level = draft.level
        self._state = draft.state
        self._level_achievements = draft.level_achievements
        self._plateau_periods = draft.plateau_periods
        self._intervention_history = draft.intervention_history
        self._gaming_flags = draft.gaming_flags
        self._requires_human_review = draft.requires_human_review
        self._events.extend(draft.events)
        self.last_updated = now
        self.version += 1
