"""
Intervention Recommendations

Maps a learner's behavioral signal profile to the intervention most likely to
help, checked in priority order:

1. heavy hint dependency   -> scaffolding adjustment (reduce support)
2. poor error recovery     -> remediation support (expert guidance)
3. low transfer success    -> scaffolding adjustment (add structure)
4. very low efficiency     -> motivation enhancement (break, change of task)

Cultural context adds delivery guidance on top of the chosen intervention.
"""
from enum import Enum
from typing import Dict, Sequence, Tuple, Union
import logging

import numpy as np

from ccis_engine.adaptive.signals.behavioral_signals import (
    INTERVENTION_THRESHOLDS,
    BehavioralSignalSet,
    SignalName,
)
from ccis_engine.core.exceptions import ValidationError
from ccis_engine.schemas.progression import (
    InterventionRecommendation,
    InterventionType,
    InterventionUrgency,
)

logger = logging.getLogger(__name__)

EFFICIENCY_VERY_LOW = 0.15

# Delivery guidance for regions that weight authority or formality highly
CULTURAL_GUIDANCE: Dict[str, Tuple[str, ...]] = {
    "india": ("Deliver guidance through a mentor with comprehensive feedback",),
    "uae": ("Keep guidance formal and direct",),
    "international": (),
}

NO_INTERVENTION = InterventionRecommendation(
    intervention_type=None,
    urgency=InterventionUrgency.LOW,
    reason="Performance within acceptable range",
    suggested_actions=("Continue current learning approach",),
    estimated_effectiveness=0.5,
)


def _recommendation_for(signals: BehavioralSignalSet) -> InterventionRecommendation:
    if signals.hint_request_frequency < INTERVENTION_THRESHOLDS[SignalName.HINT_REQUEST_FREQUENCY]:
        return InterventionRecommendation(
            intervention_type=InterventionType.SCAFFOLDING_ADJUSTMENT,
            urgency=InterventionUrgency.MEDIUM,
            reason="High hint dependency detected - learner may be over-relying on support",
            suggested_actions=(
                "Gradually reduce hint availability",
                "Encourage independent problem-solving",
                "Provide reflection prompts before hints",
            ),
            estimated_effectiveness=0.75,
        )

    if signals.error_recovery_speed < INTERVENTION_THRESHOLDS[SignalName.ERROR_RECOVERY_SPEED]:
        return InterventionRecommendation(
            intervention_type=InterventionType.REMEDIATION_SUPPORT,
            urgency=InterventionUrgency.HIGH,
            reason="Poor error recovery indicates conceptual gaps",
            suggested_actions=(
                "Schedule one-on-one mentoring session",
                "Provide targeted concept review",
                "Use worked examples and guided practice",
            ),
            estimated_effectiveness=0.85,
        )

    if signals.transfer_success_rate < INTERVENTION_THRESHOLDS[SignalName.TRANSFER_SUCCESS_RATE]:
        return InterventionRecommendation(
            intervention_type=InterventionType.SCAFFOLDING_ADJUSTMENT,
            urgency=InterventionUrgency.MEDIUM,
            reason="Low transfer success suggests need for more structured support",
            suggested_actions=(
                "Provide more concrete examples",
                "Break tasks into smaller steps",
                "Use analogical reasoning exercises",
            ),
            estimated_effectiveness=0.7,
        )

    if signals.task_completion_efficiency < EFFICIENCY_VERY_LOW:
        return InterventionRecommendation(
            intervention_type=InterventionType.MOTIVATION_ENHANCEMENT,
            urgency=InterventionUrgency.LOW,
            reason="Very low task efficiency - a break may improve performance",
            suggested_actions=(
                "Take a 15-minute break",
                "Switch to a different competency",
                "Engage in physical activity",
            ),
            estimated_effectiveness=0.6,
        )

    return NO_INTERVENTION


def recommend_intervention(
    signals: BehavioralSignalSet,
    cultural_context: Union[str, Enum] = "international",
) -> InterventionRecommendation:
    """Recommend one intervention for a signal profile"""
    context = str(getattr(cultural_context, "value", cultural_context)).strip().lower()
    if context not in CULTURAL_GUIDANCE:
        raise ValidationError(f"Invalid cultural_context: {cultural_context}", "cultural_context")

    recommendation = _recommendation_for(signals)
    if not recommendation.needed or not CULTURAL_GUIDANCE[context]:
        return recommendation

    logger.debug(f"Adding {context} delivery guidance to {recommendation.intervention_type.value}")
    return recommendation.model_copy(update={
        "suggested_actions": recommendation.suggested_actions + CULTURAL_GUIDANCE[context],
    })


def average_signals(signal_sets: Sequence[BehavioralSignalSet]) -> BehavioralSignalSet:
    """Component-wise mean of several signal sets"""
    if not signal_sets:
        raise ValidationError("At least one signal set is required", "signals")
    vectors = np.array([s.as_vector() for s in signal_sets])
    return BehavioralSignalSet(**{
        name.value: float(np.clip(value, 0.0, 1.0))
        for name, value in zip(SignalName, vectors.mean(axis=0))
    })
