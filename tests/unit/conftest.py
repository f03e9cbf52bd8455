"""
Unit test configuration and fixtures.

Unit tests validate isolated components without external dependencies.
"""

import os

# Keep unit tests independent of any local .env
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("EXTERNAL_SCORER_ENABLED", "false")

import pytest


@pytest.fixture
def sample_person_id():
    """Sample person ID for tests."""
    return "person_123"


@pytest.fixture
def assessment_factory(clock):
    """Build a CompetencyAssessment on the test clock"""
    from ccis_engine.adaptive.progression import CompetencyAssessment

    def _create(initial_level: int = 1, target_level: int = 4, **kwargs):
        return CompetencyAssessment(
            person_id=kwargs.pop("person_id", "person_123"),
            competency_id=kwargs.pop("competency_id", "communication"),
            initial_level=initial_level,
            target_level=target_level,
            clock=clock,
            **kwargs,
        )

    return _create


@pytest.fixture
def add_evidence(clock, uniform_signals):
    """
    Append evidence to an assessment, advancing the clock between records.

    Returns the recorded TaskEvidence list.
    """

    def _add(assessment, performances, signal_value=0.6, confidence=0.8, days_apart=0.0, **kwargs):
        recorded = []
        for i, performance in enumerate(performances):
            if i and days_apart:
                clock.advance(days=days_apart)
            recorded.append(assessment.add_task_evidence(
                performance_score=performance,
                signals=uniform_signals(signal_value),
                confidence=confidence,
                completion_time_ms=kwargs.get("completion_time_ms", 120_000),
                scaffolding_level=kwargs.get("scaffolding_level", 1),
                gaming_risk=kwargs.get("gaming_risk"),
            ))
        return recorded

    return _add
