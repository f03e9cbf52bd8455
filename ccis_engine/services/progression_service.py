"""
Progression Service

Orchestrates competency assessments for callers:

- resolves person and competency identifiers
- scores signals through the configured Scorer (local or external estimator)
- evaluates gaming risk before touching the aggregate
- serializes mutations per (person, competency) and saves with version checks

Anything that may block (external scoring, risk evaluation) runs before the
per-assessment lock is taken.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union
import asyncio
import logging
import threading
import uuid

from ccis_engine.adaptive.gaming.risk_assessor import GamingEvaluationInput, GamingRiskAssessor
from ccis_engine.adaptive.progression.certification import CertificationEvidenceBuilder
from ccis_engine.adaptive.progression.competency_assessment import (
    AssessmentMetadata,
    CompetencyAssessment,
)
from ccis_engine.adaptive.progression.evidence_ledger import TaskEvidence
from ccis_engine.adaptive.progression.state_machine import AssessmentState
from ccis_engine.adaptive.signals.behavioral_signals import (
    BehavioralSignalSet,
    RawInteractionMetrics,
    SignalNormalizer,
)
from ccis_engine.adaptive.signals.level_classifier import CCISLevel
from ccis_engine.adaptive.signals.scorer import BehavioralScorer, Scorer, ScoringOutcome, build_scorer
from ccis_engine.core.catalog import CompetencyCatalog, load_default_catalog
from ccis_engine.core.config import Settings, settings
from ccis_engine.core.exceptions import (
    AssessmentNotFoundError,
    ConcurrencyConflictError,
    InvalidSignalError,
    ValidationError,
)
from ccis_engine.core.logging import EVENT_LOGGER
from ccis_engine.schemas.progression import (
    AssessmentSummary,
    CertificationEvidencePackage,
    GamingRiskResult,
    InterventionRecommendation,
    InterventionType,
)

logger = logging.getLogger(__name__)
event_logger = logging.getLogger(EVENT_LOGGER)

AssessmentKey = Tuple[str, str]


# ============================================================================
# Collaborators
# ============================================================================

class IdentityResolver(Protocol):
    def person_exists(self, person_id: str) -> bool:
        ...

    def competency_exists(self, competency_id: str) -> bool:
        ...

    def resolve_competency(self, competency_id: str) -> str:
        ...


class AssessmentRepository(Protocol):
    def get(self, person_id: str, competency_id: str) -> Optional[CompetencyAssessment]:
        ...

    def add(self, assessment: CompetencyAssessment) -> None:
        ...

    def save(self, assessment: CompetencyAssessment, expected_version: int) -> None:
        ...


class CatalogIdentityResolver:
    """
    Resolves competencies against the catalog.

    With no known_people every non-empty person id is accepted.
    """

    def __init__(self, catalog: Optional[CompetencyCatalog] = None, known_people: Optional[Iterable[str]] = None):
        self.catalog = catalog or load_default_catalog()
        self.known_people = set(known_people) if known_people is not None else None

    def person_exists(self, person_id: str) -> bool:
        if not isinstance(person_id, str) or not person_id.strip():
            return False
        return self.known_people is None or person_id in self.known_people

    def competency_exists(self, competency_id: str) -> bool:
        return self.catalog.contains(competency_id)

    def resolve_competency(self, competency_id: str) -> str:
        return self.catalog.resolve_id(competency_id)


class InMemoryAssessmentRepository:
    """Process-local store with optimistic version checks"""

    def __init__(self):
        self._items: Dict[AssessmentKey, CompetencyAssessment] = {}
        self._versions: Dict[AssessmentKey, int] = {}
        self._lock = threading.Lock()

    def get(self, person_id: str, competency_id: str) -> Optional[CompetencyAssessment]:
        with self._lock:
            return self._items.get((person_id, competency_id))

    def add(self, assessment: CompetencyAssessment) -> None:
        key = (assessment.person_id, assessment.competency_id)
        with self._lock:
            if key in self._items:
                raise ConcurrencyConflictError(
                    f"Assessment for {key[0]}/{key[1]} already exists", "assessment"
                )
            self._items[key] = assessment
            self._versions[key] = assessment.version

    def save(self, assessment: CompetencyAssessment, expected_version: int) -> None:
        key = (assessment.person_id, assessment.competency_id)
        with self._lock:
            stored = self._versions.get(key)
            if stored is None:
                raise AssessmentNotFoundError(f"No assessment for {key[0]}/{key[1]}", "assessment")
            if stored != expected_version:
                raise ConcurrencyConflictError(
                    f"Assessment {assessment.id} was modified concurrently "
                    f"(expected version {expected_version}, stored {stored})",
                    "version",
                )
            self._items[key] = assessment
            self._versions[key] = assessment.version

    def __len__(self) -> int:
        return len(self._items)


@dataclass
class SubmissionResult:
    """Outcome of submitting one raw interaction"""
    evidence: TaskEvidence
    gaming_risk: GamingRiskResult
    scoring: ScoringOutcome
    state: AssessmentState
    completeness: float
    excluded: bool = False
    data_quality_warnings: List[str] = field(default_factory=list)


# ============================================================================
# Service
# ============================================================================

class ProgressionService:
    """Entry point for competency progression operations"""

    # Evidence considered together when scoring gaming risk for a new record
    GAMING_EVIDENCE_WINDOW = 5

    def __init__(
        self,
        repository: Optional[AssessmentRepository] = None,
        identity_resolver: Optional[IdentityResolver] = None,
        scorer: Optional[Scorer] = None,
        gaming_assessor: Optional[GamingRiskAssessor] = None,
        catalog: Optional[CompetencyCatalog] = None,
        config: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or settings
        self.catalog = catalog or load_default_catalog()
        self.repository = repository or InMemoryAssessmentRepository()
        self.identity_resolver = identity_resolver or CatalogIdentityResolver(self.catalog)
        self.scorer = scorer or build_scorer(self.config)
        self.gaming_assessor = gaming_assessor or GamingRiskAssessor(
            high_risk_threshold=self.config.HIGH_RISK_THRESHOLD
        )
        self.normalizer = SignalNormalizer()
        self.behavioral_scorer = BehavioralScorer()
        self.clock = clock or datetime.utcnow

        self._locks: Dict[AssessmentKey, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_assessment(
        self,
        person_id: str,
        competency_id: str,
        initial_level: int = 1,
        target_level: int = 4,
        metadata: Optional[Union[AssessmentMetadata, Mapping[str, Any]]] = None,
    ) -> CompetencyAssessment:
        """Create the assessment, or return the existing one for this pair"""
        key = self._resolve(person_id, competency_id)
        if not isinstance(metadata, AssessmentMetadata):
            metadata = AssessmentMetadata.from_dict(metadata)

        with self._lock_for(key):
            existing = self.repository.get(*key)
            if existing is not None:
                logger.info(f"Assessment already started for {key[0]}/{key[1]}")
                return existing

            assessment = CompetencyAssessment(
                person_id=key[0],
                competency_id=key[1],
                initial_level=initial_level,
                target_level=target_level,
                metadata=metadata,
                decay_rate=self.config.EVIDENCE_DECAY_RATE,
                high_risk_threshold=self.config.HIGH_RISK_THRESHOLD,
                clock=self.clock,
                certification_builder=CertificationEvidenceBuilder(catalog=self.catalog),
            )
            self.repository.add(assessment)

        logger.info(
            f"Started assessment {assessment.id} for {key[0]}/{key[1]} "
            f"at {assessment.current_level}, target level {assessment.target_level.level}"
        )
        return assessment

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def add_task_evidence(
        self,
        person_id: str,
        competency_id: str,
        performance_score: float,
        signals: Union[BehavioralSignalSet, Mapping[str, float]],
        confidence: float,
        completion_time_ms: float,
        scaffolding_level: int,
        task_interaction_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        answer_changes: Optional[List[int]] = None,
        gaming_risk: Optional[GamingRiskResult] = None,
    ) -> TaskEvidence:
        """
        Score, risk-check and record one task interaction.

        When gaming_risk is not supplied it is computed from the new record
        together with the most recent evidence.
        """
        key = self._resolve(person_id, competency_id)
        assessment = self._load(key)
        signal_set = self._coerce_signals(signals)
        task_interaction_id = task_interaction_id or str(uuid.uuid4())

        outcome = self._score(signal_set, {"person_id": key[0], "competency_id": key[1]})

        if gaming_risk is None:
            candidate = TaskEvidence(
                task_interaction_id=task_interaction_id,
                performance_score=performance_score,
                signals=signal_set,
                confidence_score=confidence,
                completion_time_ms=completion_time_ms,
                scaffolding_used=scaffolding_level,
                timestamp=timestamp or self.clock(),
                signal_score=outcome.value,
            )
            recent = list(assessment.ledger.included_evidence[-(self.GAMING_EVIDENCE_WINDOW - 1):])
            gaming_risk = self.gaming_assessor.evaluate_evidence(
                recent + [candidate],
                session_id=task_interaction_id,
                answer_changes=answer_changes,
            )

        return self._record(
            key,
            performance_score=performance_score,
            signals=signal_set,
            confidence=confidence,
            completion_time_ms=completion_time_ms,
            scaffolding_level=scaffolding_level,
            task_interaction_id=task_interaction_id,
            timestamp=timestamp,
            outcome=outcome,
            gaming_risk=gaming_risk,
        )

    async def submit_interaction(
        self,
        person_id: str,
        competency_id: str,
        metrics: RawInteractionMetrics,
        performance_score: float,
        scaffolding_level: int,
        timing_pattern: Optional[List[float]] = None,
        error_pattern: Optional[List[int]] = None,
        answer_changes: Optional[List[int]] = None,
        task_interaction_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> SubmissionResult:
        """
        Normalize raw metrics, then score and risk-check them off the event loop.

        Risk evaluation is bounded by GAMING_EVALUATION_TIMEOUT_SECONDS; on
        timeout the evidence is recorded with an unknown-risk result.
        """
        key = self._resolve(person_id, competency_id)
        assessment = self._load(key)
        task_interaction_id = task_interaction_id or str(uuid.uuid4())

        normalization = self.normalizer.normalize(metrics)
        signals = normalization.signals
        timings = list(timing_pattern or [metrics.task_completion_time_ms / 1000.0])

        confidence = self.behavioral_scorer.assessment_confidence(
            signals,
            task_count=len(timings),
            duration_minutes=sum(timings) / 60.0,
        ).value * normalization.completeness

        outcome = await asyncio.to_thread(
            self._score, signals, {"person_id": key[0], "competency_id": key[1]}
        )

        stats = assessment.ledger.statistics
        session = GamingEvaluationInput(
            session_id=task_interaction_id,
            signals=signals,
            timing_pattern=timings,
            hint_usage_pattern=[metrics.hints_requested],
            error_pattern=list(error_pattern or []),
            answer_changes=list(answer_changes or []),
            historical_average=stats.average_performance if assessment.ledger.included_evidence else None,
        )
        try:
            gaming_risk = await asyncio.wait_for(
                asyncio.to_thread(self.gaming_assessor.evaluate, session),
                timeout=self.config.GAMING_EVALUATION_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Gaming risk evaluation timed out after {self.config.GAMING_EVALUATION_TIMEOUT_SECONDS}s "
                f"for {task_interaction_id}, recording with unknown risk"
            )
            gaming_risk = GamingRiskResult.unknown(
                session_id=task_interaction_id, reason="Gaming risk evaluation timed out"
            )

        evidence = self._record(
            key,
            performance_score=performance_score,
            signals=signals,
            confidence=confidence,
            completion_time_ms=metrics.task_completion_time_ms,
            scaffolding_level=scaffolding_level,
            task_interaction_id=task_interaction_id,
            timestamp=timestamp,
            outcome=outcome,
            gaming_risk=gaming_risk,
        )

        assessment = self._load(key)
        return SubmissionResult(
            evidence=evidence,
            gaming_risk=gaming_risk,
            scoring=outcome,
            state=assessment.state,
            completeness=normalization.completeness,
            excluded=assessment.ledger.is_excluded(evidence.task_interaction_id),
            data_quality_warnings=list(normalization.warnings),
        )

    # ------------------------------------------------------------------
    # Progression
    # ------------------------------------------------------------------

    def update_progress(self, person_id: str, competency_id: str) -> AssessmentState:
        return self._mutate(person_id, competency_id, lambda a: a.update_progress())

    def can_advance_level(self, person_id: str, competency_id: str) -> bool:
        key = self._resolve(person_id, competency_id)
        return self._load(key).can_advance_level()

    def advance_to_next_level(self, person_id: str, competency_id: str) -> CCISLevel:
        return self._mutate(person_id, competency_id, lambda a: a.advance_to_next_level())

    def apply_intervention(
        self,
        person_id: str,
        competency_id: str,
        intervention_type: Union[InterventionType, str],
        data: Optional[Dict[str, Any]] = None,
    ) -> AssessmentState:
        def apply(assessment: CompetencyAssessment) -> AssessmentState:
            assessment.apply_intervention(intervention_type, data)
            return assessment.state

        return self._mutate(person_id, competency_id, apply)

    def recommend_intervention(self, person_id: str, competency_id: str) -> Optional[InterventionRecommendation]:
        """Intervention suggested by the learner's recent signals, None before any evidence"""
        key = self._resolve(person_id, competency_id)
        return self._load(key).recommend_intervention()

    # ------------------------------------------------------------------
    # Certification and reporting
    # ------------------------------------------------------------------

    def is_certification_ready(self, person_id: str, competency_id: str) -> bool:
        key = self._resolve(person_id, competency_id)
        return self._load(key).is_certification_ready()

    def generate_certification_evidence(self, person_id: str, competency_id: str) -> CertificationEvidencePackage:
        key = self._resolve(person_id, competency_id)
        return self._load(key).generate_certification_evidence()

    def get_assessment_summary(self, person_id: str, competency_id: str) -> AssessmentSummary:
        key = self._resolve(person_id, competency_id)
        return self._load(key).get_assessment_summary()

    def get_assessment(self, person_id: str, competency_id: str) -> CompetencyAssessment:
        return self._load(self._resolve(person_id, competency_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, person_id: str, competency_id: str) -> AssessmentKey:
        if not self.identity_resolver.person_exists(person_id):
            raise ValidationError(f"Unknown person: {person_id}", "personId")
        if not self.identity_resolver.competency_exists(competency_id):
            raise ValidationError(f"Invalid competency type: {competency_id}", "competencyId")
        return person_id, self.identity_resolver.resolve_competency(competency_id)

    def _load(self, key: AssessmentKey) -> CompetencyAssessment:
        assessment = self.repository.get(*key)
        if assessment is None:
            raise AssessmentNotFoundError(f"No assessment for {key[0]}/{key[1]}", "assessment")
        return assessment

    def _lock_for(self, key: AssessmentKey) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @staticmethod
    def _coerce_signals(signals) -> BehavioralSignalSet:
        if isinstance(signals, BehavioralSignalSet):
            return signals
        if isinstance(signals, Mapping):
            return BehavioralSignalSet.from_mapping(signals)
        raise InvalidSignalError("Signals must be a BehavioralSignalSet or a mapping", "signals")

    def _score(self, signals: BehavioralSignalSet, context: Dict[str, Any]) -> ScoringOutcome:
        outcome = self.scorer.score(signals, context)
        if not outcome.ok:
            # Last resort when a custom scorer has no fallback of its own
            logger.warning(f"Scorer failed ({outcome.error}), scoring locally")
            outcome = ScoringOutcome(
                ok=True,
                value=self.behavioral_scorer.score(signals),
                source="local",
                error=outcome.error,
                fallback_used=True,
            )
        elif outcome.fallback_used:
            logger.warning(f"External scorer unavailable ({outcome.error}), used {outcome.source}")
        return outcome

    def _record(
        self,
        key: AssessmentKey,
        outcome: ScoringOutcome,
        gaming_risk: GamingRiskResult,
        **evidence: Any,
    ) -> TaskEvidence:
        with self._lock_for(key):
            assessment = self._load(key)
            version = assessment.version
            recorded = assessment.add_task_evidence(
                signal_score=outcome.value,
                scoring_source=outcome.source,
                gaming_risk=gaming_risk,
                **evidence,
            )
            self.repository.save(assessment, version)
            self._publish(assessment)
        return recorded

    def _mutate(self, person_id: str, competency_id: str, operation: Callable[[CompetencyAssessment], Any]):
        key = self._resolve(person_id, competency_id)
        with self._lock_for(key):
            assessment = self._load(key)
            version = assessment.version
            result = operation(assessment)
            if assessment.version != version:
                self.repository.save(assessment, version)
            self._publish(assessment)
        return result

    @staticmethod
    def _publish(assessment: CompetencyAssessment) -> None:
        for event in assessment.pull_events():
            event_logger.info(
                f"{type(event).__name__} for {event.person_id}/{event.competency_id} "
                f"(assessment {event.assessment_id})"
            )


# Global instance
progression_service = ProgressionService()


def get_progression_service() -> ProgressionService:
    """Dependency injection"""
    return progression_service
