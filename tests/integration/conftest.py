"""
Pytest configuration and shared fixtures for integration tests

Integration tests drive complete progressions through ProgressionService with
the in-memory repository and a fixed clock.
"""

import pytest
from typing import Dict, List

from ccis_engine.core.config import Settings
from ccis_engine.services import ProgressionService


# Timings cycle through a natural-looking spread so timing regularity stays low
TASK_TIMES_MS: List[int] = [45_000, 80_000, 62_000, 120_000, 95_000]

LEARNER_SIGNALS: Dict[str, float] = {
    "hint_request_frequency": 0.9,
    "error_recovery_speed": 0.3,
    "transfer_success_rate": 0.6,
    "metacognitive_accuracy": 0.2,
    "task_completion_efficiency": 0.8,
    "help_seeking_quality": 0.5,
    "self_assessment_alignment": 0.1,
}


@pytest.fixture
def service(clock) -> ProgressionService:
    return ProgressionService(
        config=Settings(EXTERNAL_SCORER_ENABLED=False, ENVIRONMENT="development"),
        clock=clock,
    )


@pytest.fixture
def submit(service, clock):
    """Record a run of task performances through the service, days_apart days apart"""

    def _submit(person_id, competency_id, performances, signals=None, confidence=0.8, days_apart=0.0):
        recorded = []
        for i, performance in enumerate(performances):
            if i and days_apart:
                clock.advance(days=days_apart)
            recorded.append(service.add_task_evidence(
                person_id,
                competency_id,
                performance_score=performance,
                signals=signals or LEARNER_SIGNALS,
                confidence=confidence,
                completion_time_ms=TASK_TIMES_MS[i % len(TASK_TIMES_MS)],
                scaffolding_level=1,
            ))
        return recorded

    return _submit
