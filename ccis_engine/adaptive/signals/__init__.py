"""
Behavioral Signals Module

Seven weighted independence signals, the scorers that combine them, and the
CCIS level scale they map onto.
"""

from .behavioral_signals import (
    SignalName,
    SIGNAL_WEIGHTS,
    BehavioralSignalSet,
    RawInteractionMetrics,
    NormalizationResult,
    SignalNormalizer,
)
from .level_classifier import CCISLevel, LevelClassifier
from .confidence import ConfidenceScore, ConfidenceBand
from .scorer import (
    BehavioralScorer,
    SignalContribution,
    ScoringOutcome,
    Scorer,
    LocalScorer,
    RemoteEstimatorScorer,
    FallbackScorer,
    build_scorer,
    OverallLevelResult,
    aggregate_overall_level,
)

__all__ = [
    "SignalName",
    "SIGNAL_WEIGHTS",
    "BehavioralSignalSet",
    "RawInteractionMetrics",
    "NormalizationResult",
    "SignalNormalizer",
    "CCISLevel",
    "LevelClassifier",
    "ConfidenceScore",
    "ConfidenceBand",
    "BehavioralScorer",
    "SignalContribution",
    "ScoringOutcome",
    "Scorer",
    "LocalScorer",
    "RemoteEstimatorScorer",
    "FallbackScorer",
    "build_scorer",
    "OverallLevelResult",
    "aggregate_overall_level",
]
