"""Pytest configuration and shared fixtures.

Fakes for models, agents and clocks live in ``fakes.py`` so test modules can
construct them with custom behaviour; this file exposes the common setups as
fixtures.
"""

import pytest

from config.settings import LivelySettings, OrchestratorConfig
from debate_engine.database import DebateStore
from fakes import FakeClock


# =============================================================================
# SHARED FIXTURES - Available to all test modules
# =============================================================================


@pytest.fixture
def sample_proposition() -> str:
    """Provide a standard proposition for testing."""
    return "Should artificial intelligence be regulated by governments?"


@pytest.fixture
def store(tmp_path) -> DebateStore:
    """A fresh SQLite store in a temporary directory."""
    return DebateStore(tmp_path / "debates.db")


@pytest.fixture
def clock() -> FakeClock:
    """Seconds-based fake clock, as used by the orchestrator."""
    return FakeClock()


@pytest.fixture
def ms_clock() -> FakeClock:
    """Milliseconds-based fake clock, as used by the rate limiter."""
    return FakeClock(start=1_000_000.0, scale=1000.0)


@pytest.fixture
def fast_config() -> OrchestratorConfig:
    """Orchestrator settings with no real waiting between retries."""
    return OrchestratorConfig(
        max_retries=3,
        retry_delay_ms=10,
        agent_timeout_ms=5000,
        pause_poll_interval_ms=10,
        step_poll_interval_ms=10,
    )


@pytest.fixture
def lively_settings() -> LivelySettings:
    return LivelySettings(enabled=True, aggression_level=3, relevance_threshold=0.7)


# =============================================================================
# PYTEST CONFIGURATION HOOKS
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
