"""
Engine error taxonomy

Every failure the engine can report maps to one ErrorKind so callers can tell
"fix your input" apart from "criteria not yet met" and "needs human review":

- VALIDATION: malformed or out-of-range input. Surfaced, never retried.
- BUSINESS_RULE: caller logic error (advancing without criteria, mutating a
  mastered assessment, bad target level). Surfaced, never retried.
- DATA_QUALITY: incomplete evidence. Emitted as a warning, processing continues.
- GAMING_RISK: suspect evidence. Recorded as a flag, never raised.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    """Named failure conditions exposed to callers"""
    VALIDATION = "validation_error"
    BUSINESS_RULE = "business_rule_violation"
    DATA_QUALITY = "data_quality_warning"
    GAMING_RISK = "gaming_risk_flag"


class ProgressionEngineError(Exception):
    """Base class for all errors raised by the engine"""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "error": type(self).__name__,
            "message": self.message,
            "field": self.field,
        }


# ============================================================================
# Validation errors
# ============================================================================

class ValidationError(ProgressionEngineError):
    """Malformed or out-of-range input"""
    kind = ErrorKind.VALIDATION


class InvalidSignalError(ValidationError):
    """A behavioral signal is missing, not a number, or outside [0, 1]"""


class InvalidLevelError(ValidationError):
    """A CCIS level or percentage is outside its allowed range"""


class InvalidEvidenceError(ValidationError):
    """Performance, confidence, timing or scaffolding values are invalid"""


# ============================================================================
# Business rule violations
# ============================================================================

class BusinessRuleViolation(ProgressionEngineError):
    """The operation is not allowed in the aggregate's current state"""
    kind = ErrorKind.BUSINESS_RULE


class CriteriaNotMetError(BusinessRuleViolation):
    """Level advancement requested before every criterion holds"""

    def __init__(self, message: str, failed_criteria: Optional[List[str]] = None):
        super().__init__(message, field="levelAdvancement")
        self.failed_criteria = list(failed_criteria or [])


class NotCertificationReadyError(BusinessRuleViolation):
    """Certification evidence requested before readiness criteria hold"""

    def __init__(self, message: str, failed_criteria: Optional[List[str]] = None):
        super().__init__(message, field="certificationReadiness")
        self.failed_criteria = list(failed_criteria or [])


class EvidenceOnMasteredAssessmentError(BusinessRuleViolation):
    """Evidence submitted to an assessment that is already MASTERED"""


class InvalidTargetLevelError(BusinessRuleViolation):
    """Target level is not above the current level at construction"""


class ConcurrencyConflictError(BusinessRuleViolation):
    """A save was attempted from a stale aggregate version"""


class AssessmentNotFoundError(ProgressionEngineError):
    """No assessment exists for the requested person and competency"""
    kind = ErrorKind.VALIDATION


# ============================================================================
# Non-fatal conditions
# ============================================================================

class DataQualityWarning(UserWarning):
    """Evidence is incomplete; confidence is degraded but processing continues"""
    kind = ErrorKind.DATA_QUALITY


@dataclass(frozen=True)
class GamingRiskFlag:
    """
    Record that a piece of evidence was set aside for human review.

    Never raised: the evidence stays in the audit history and the owning
    assessment is marked as requiring review.
    """
    task_interaction_id: str
    risk_score: float
    patterns: List[str] = field(default_factory=list)
    flagged_at: datetime = field(default_factory=datetime.utcnow)
    kind: ErrorKind = ErrorKind.GAMING_RISK
