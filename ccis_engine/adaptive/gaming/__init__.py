"""
Gaming risk detection for assessment sessions and evidence batches
"""
from .risk_assessor import (
    GamingRiskAssessor,
    GamingEvaluationInput,
    DetectorResult,
)

__all__ = [
    "GamingRiskAssessor",
    "GamingEvaluationInput",
    "DetectorResult",
]
