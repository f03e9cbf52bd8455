"""
Certification readiness and evidence packaging

An assessment is certification-ready when all of these hold:
- current level >= 3
- at least 20 included evidence records
- weighted average performance >= 0.90
- average confidence >= 0.90
- sustained performance: >= 5 records in the last 21 days averaging >= 0.85
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional
import logging
import math

from ccis_engine.adaptive.signals.confidence import ConfidenceScore
from ccis_engine.adaptive.signals.level_classifier import CCISLevel
from ccis_engine.core.catalog import CompetencyCatalog, load_default_catalog
from ccis_engine.core.exceptions import NotCertificationReadyError
from ccis_engine.schemas.progression import (
    AssessmentPeriod,
    CertificationEvidencePackage,
    KeyEvidence,
    LearningJourney,
)

from .evidence_ledger import EvidenceLedger, stable_mean

if TYPE_CHECKING:
    from .competency_assessment import CompetencyAssessment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CertificationCriteria:
    min_level: int = 3
    min_evidence_count: int = 20
    min_average_performance: float = 0.90
    min_average_confidence: float = 0.90
    sustained_window_days: int = 21
    sustained_min_records: int = 5
    sustained_min_performance: float = 0.85


@dataclass
class ReadinessCheck:
    ready: bool
    failed_criteria: List[str] = field(default_factory=list)


def evaluate_readiness(
    level: int,
    ledger: EvidenceLedger,
    now: datetime,
    criteria: CertificationCriteria = CertificationCriteria(),
) -> ReadinessCheck:
    stats = ledger.statistics
    failed: List[str] = []

    if level < criteria.min_level:
        failed.append("min_level")
    if len(ledger.included_evidence) < criteria.min_evidence_count:
        failed.append("min_evidence_count")
    if stats.average_performance < criteria.min_average_performance:
        failed.append("min_average_performance")
    if stats.average_confidence < criteria.min_average_confidence:
        failed.append("min_average_confidence")

    recent = ledger.in_window(now - timedelta(days=criteria.sustained_window_days))
    if len(recent) < criteria.sustained_min_records \
            or stable_mean([r.performance_score for r in recent]) < criteria.sustained_min_performance:
        failed.append("sustained_performance")

    return ReadinessCheck(ready=not failed, failed_criteria=failed)


class CertificationEvidenceBuilder:
    """Builds the immutable evidence package for a certification-ready assessment"""

    KEY_EVIDENCE_COUNT = 10

    def __init__(
        self,
        catalog: Optional[CompetencyCatalog] = None,
        criteria: CertificationCriteria = CertificationCriteria(),
    ):
        self.catalog = catalog or load_default_catalog()
        self.criteria = criteria

    def generate(self, assessment: "CompetencyAssessment") -> CertificationEvidencePackage:
        now = assessment.now()
        ledger = assessment.ledger
        check = evaluate_readiness(assessment.current_level.level, ledger, now, self.criteria)
        if not check.ready:
            raise NotCertificationReadyError(
                "Competency assessment not ready for certification", check.failed_criteria
            )

        stats = ledger.statistics
        included = ledger.included_evidence
        key_evidence = sorted(included, key=lambda e: e.performance_score, reverse=True)[: self.KEY_EVIDENCE_COUNT]

        milestones = sorted(assessment.level_achievements.items(), key=lambda item: item[1])
        duration_days = max(0, math.ceil((now - assessment.created_at) / timedelta(days=1)))
        confidence = ConfidenceScore(stats.average_confidence)
        competency = self.catalog.get(assessment.competency_id)

        package = CertificationEvidencePackage(
            assessment_id=assessment.id,
            person_id=assessment.person_id,
            competency_id=competency.id,
            competency_name=competency.name,
            achieved_level=assessment.current_level.level,
            level_name=assessment.current_level.display_name,
            evidence_count=len(included),
            average_performance=stats.average_performance,
            average_confidence=confidence.value,
            confidence_band=confidence.band.value,
            assessment_period=AssessmentPeriod(
                start_date=assessment.created_at,
                end_date=now,
                duration_days=duration_days,
            ),
            key_evidence=[
                KeyEvidence(
                    task_interaction_id=e.task_interaction_id,
                    performance_score=e.performance_score,
                    confidence_score=e.confidence_score,
                    timestamp=e.timestamp,
                    evidence_weight=e.evidence_weight,
                )
                for e in key_evidence
            ],
            learning_journey=LearningJourney(
                initial_level=assessment.initial_level.level,
                milestones=[{"level": level, "achieved_at": at} for level, at in milestones],
                interventions_used=list(assessment.intervention_history),
                plateau_periods=len(assessment.plateau_periods),
            ),
            cultural_context=assessment.metadata.cultural_context.value,
            generated_at=now,
        )

        logger.info(
            f"Certification evidence generated for {assessment.person_id}/{competency.id} "
            f"at {CCISLevel.from_level(package.achieved_level)}"
        )
        return package
