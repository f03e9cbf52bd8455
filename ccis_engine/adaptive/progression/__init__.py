"""
Competency Progression

Evidence ledger, state machine, certification and the per-competency
assessment aggregate that ties them together.
"""
from ccis_engine.schemas.progression import (
    InterventionType,
    InterventionRecommendation,
    InterventionUrgency,
)

from .evidence_ledger import (
    TaskEvidence,
    EvidenceLedger,
    LedgerStatistics,
    ProgressTrend,
)
from .state_machine import (
    AssessmentState,
    AdvancementCriteria,
    ADVANCEMENT_CRITERIA,
    AdvancementCheck,
    ProgressionStateMachine,
)
from .interventions import (
    recommend_intervention,
    average_signals,
)
from .certification import (
    CertificationCriteria,
    ReadinessCheck,
    CertificationEvidenceBuilder,
    evaluate_readiness,
)
from .competency_assessment import (
    CompetencyAssessment,
    AssessmentMetadata,
    CulturalContext,
    LearningStyle,
    PriorExperience,
    AssessmentMode,
    PlateauPeriod,
    DomainEvent,
    LevelAchieved,
    PlateauDetected,
    PlateauResolved,
    GamingRiskDetected,
    CertificationReadinessReached,
)

__all__ = [
    "TaskEvidence",
    "EvidenceLedger",
    "LedgerStatistics",
    "ProgressTrend",
    "AssessmentState",
    "InterventionType",
    "InterventionRecommendation",
    "InterventionUrgency",
    "recommend_intervention",
    "average_signals",
    "AdvancementCriteria",
    "ADVANCEMENT_CRITERIA",
    "AdvancementCheck",
    "ProgressionStateMachine",
    "CertificationCriteria",
    "ReadinessCheck",
    "CertificationEvidenceBuilder",
    "evaluate_readiness",
    "CompetencyAssessment",
    "AssessmentMetadata",
    "CulturalContext",
    "LearningStyle",
    "PriorExperience",
    "AssessmentMode",
    "PlateauPeriod",
    "DomainEvent",
    "LevelAchieved",
    "PlateauDetected",
    "PlateauResolved",
    "GamingRiskDetected",
    "CertificationReadinessReached",
]
