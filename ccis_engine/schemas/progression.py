from typing import List, Dict, Any, Optional, Tuple
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field

from ccis_engine.core.exceptions import ValidationError


class InterventionType(str, Enum):
    SCAFFOLDING_ADJUSTMENT = "scaffolding_adjustment"
    REMEDIATION_SUPPORT = "remediation_support"
    MOTIVATION_ENHANCEMENT = "motivation_enhancement"
    CULTURAL_ADAPTATION = "cultural_adaptation"
    BEHAVIORAL_CORRECTION = "behavioral_correction"
    HINT = "hint"
    CLARIFICATION = "clarification"
    TECHNICAL_SUPPORT = "technical_support"

    @classmethod
    def parse(cls, value) -> "InterventionType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown intervention type: {value}", "interventionType") from None


class InterventionUrgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class GamingPatternType(str, Enum):
    HINT_ABUSE = "hint_abuse"
    PERFECT_PERFORMANCE = "perfect_performance"
    SPEED_GAMING = "speed_gaming"
    PATTERN_REPETITION = "pattern_repetition"
    VARIANCE_ANOMALY = "variance_anomaly"
    TIME_MANIPULATION = "time_manipulation"
    ANSWER_CHANGING = "answer_changing"
    IMPOSSIBLE_IMPROVEMENT = "impossible_improvement"


class GamingRiskLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    UNKNOWN = "unknown"  # evaluation did not complete


class GamingResponseAction(str, Enum):
    NO_ACTION = "no_action"
    MONITOR_CLOSELY = "monitor_closely"
    EXTEND_ASSESSMENT = "extend_assessment"
    FLAG_FOR_REVIEW = "flag_for_review"
    INVALIDATE_SESSION = "invalidate_session"


class DetectedPattern(BaseModel):
    pattern_type: GamingPatternType
    confidence: float = Field(..., ge=0, le=1)
    description: str = ""
    evidence: List[str] = Field(default_factory=list)


class GamingRiskResult(BaseModel):
    """Anomaly risk for a session or an evidence batch"""
    risk_score: float = Field(..., ge=0, le=1)
    flagged_patterns: List[GamingPatternType] = Field(default_factory=list)
    confidence: float = Field(..., ge=0, le=1)
    risk_level: GamingRiskLevel = GamingRiskLevel.NONE
    recommended_action: GamingResponseAction = GamingResponseAction.NO_ACTION
    requires_human_review: bool = False
    patterns: List[DetectedPattern] = Field(default_factory=list)
    evidence: List[str] = Field(default_factory=list)
    session_id: Optional[str] = None
    evaluated_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def unknown(cls, session_id: Optional[str] = None, reason: str = "Gaming risk evaluation did not complete") -> "GamingRiskResult":
        """Neutral result used when evaluation times out or is skipped"""
        return cls(
            risk_score=0.0,
            confidence=0.0,
            risk_level=GamingRiskLevel.UNKNOWN,
            recommended_action=GamingResponseAction.MONITOR_CLOSELY,
            requires_human_review=False,
            evidence=[reason],
            session_id=session_id,
        )

    @property
    def is_unknown(self) -> bool:
        return self.risk_level == GamingRiskLevel.UNKNOWN


# ============================================================================
# Certification package
# ============================================================================

class KeyEvidence(BaseModel):
    model_config = ConfigDict(frozen=True)

    task_interaction_id: str
    performance_score: float = Field(..., ge=0, le=1)
    confidence_score: float = Field(..., ge=0, le=1)
    timestamp: datetime
    evidence_weight: float


class AssessmentPeriod(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_date: datetime
    end_date: datetime
    duration_days: int = Field(..., ge=0)


class LearningJourney(BaseModel):
    model_config = ConfigDict(frozen=True)

    initial_level: int = Field(..., ge=1, le=4)
    milestones: List[Dict[str, Any]] = Field(default_factory=list)  # {"level", "achieved_at"} sorted by date
    interventions_used: List[str] = Field(default_factory=list)
    plateau_periods: int = Field(0, ge=0)


class CertificationEvidencePackage(BaseModel):
    """Immutable snapshot proving certification readiness"""
    model_config = ConfigDict(frozen=True)

    assessment_id: str
    person_id: str
    competency_id: str
    competency_name: str
    achieved_level: int = Field(..., ge=1, le=4)
    level_name: str
    evidence_count: int = Field(..., ge=0)
    average_performance: float = Field(..., ge=0, le=1)
    average_confidence: float = Field(..., ge=0, le=1)
    confidence_band: str
    assessment_period: AssessmentPeriod
    key_evidence: List[KeyEvidence] = Field(default_factory=list)
    learning_journey: LearningJourney
    cultural_context: str
    generated_at: datetime


# ============================================================================
# Interventions
# ============================================================================

class InterventionRecommendation(BaseModel):
    """Suggested response to the learner's current signal profile"""
    model_config = ConfigDict(frozen=True)

    intervention_type: Optional[InterventionType] = None  # None when no intervention is needed
    urgency: InterventionUrgency = InterventionUrgency.LOW
    reason: str
    suggested_actions: Tuple[str, ...] = ()
    estimated_effectiveness: float = Field(..., ge=0, le=1)

    @property
    def needed(self) -> bool:
        return self.intervention_type is not None


# ============================================================================
# Summary
# ============================================================================

class AssessmentSummary(BaseModel):
    assessment_id: str
    person_id: str
    competency_id: str
    current_level: int = Field(..., ge=1, le=4)
    level_name: str
    target_level: int = Field(..., ge=1, le=4)
    state: str
    progress_percentage: float = Field(..., ge=0, le=100)
    evidence_count: int = Field(..., ge=0)
    included_evidence_count: int = Field(..., ge=0)
    excluded_evidence_count: int = Field(..., ge=0)
    average_performance: float = Field(..., ge=0, le=1)
    average_confidence: float = Field(..., ge=0, le=1)
    average_signal_strength: float = Field(..., ge=0, le=1)
    signal_level: Optional[int] = Field(None, ge=1, le=4)
    trend: str
    plateau_risk: float = Field(..., ge=0, le=1)
    certification_ready: bool = False
    requires_human_review: bool = False
    days_in_assessment: int = Field(..., ge=0)
    last_updated: datetime
    recommended_intervention: Optional[InterventionRecommendation] = None  # set while on a plateau
