"""
Root pytest configuration and shared fixtures for all test tiers.

Provides markers, a controllable clock and common signal/evidence builders
used by unit and integration tests.
"""

import pytest
from datetime import datetime, timedelta
from typing import Dict


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: cross-component tests through the service layer"
    )
    config.addinivalue_line(
        "markers", "unit: unit tests for isolated components"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# ============================================================================
# Time
# ============================================================================

class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, days: float = 0, hours: float = 0, seconds: float = 0) -> datetime:
        self.current = self.current + timedelta(days=days, hours=hours, seconds=seconds)
        return self.current


@pytest.fixture
def start_time() -> datetime:
    return datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def clock(start_time) -> FixedClock:
    return FixedClock(start_time)


# ============================================================================
# Signals
# ============================================================================

@pytest.fixture
def signal_values() -> Dict[str, float]:
    """A plausible mid-range learner"""
    return {
        "hint_request_frequency": 0.7,
        "error_recovery_speed": 0.6,
        "transfer_success_rate": 0.5,
        "metacognitive_accuracy": 0.8,
        "task_completion_efficiency": 0.4,
        "help_seeking_quality": 0.9,
        "self_assessment_alignment": 0.3,
    }


@pytest.fixture
def signals(signal_values):
    from ccis_engine.adaptive.signals import BehavioralSignalSet

    return BehavioralSignalSet(**signal_values)


@pytest.fixture
def uniform_signals():
    """Factory for signal sets with every component equal"""
    from ccis_engine.adaptive.signals import BehavioralSignalSet

    return BehavioralSignalSet.uniform
