"""
Shared pytest fixtures for the gitpulse test suite.

Every test runs with an isolated user config file and without
GITPULSE_* environment overrides.

Usage in tests:
    def test_something(repo_factory):
        path = repo_factory.add_repo("app")
        orch = repo_factory.orchestrator()
        report = orch.run_once()
"""

import pytest

from gitpulse.config import ConfigManager
from gitpulse.orchestrator import reset_orchestrator
from tests.factories import RepoFactory, FakeClock, FakeCollector


GITPULSE_ENV = [
    "GITPULSE_PARALLEL_ENABLED",
    "GITPULSE_COLLECTOR_WORKERS",
    "GITPULSE_COLLECTOR_TIMEOUT",
    "GITPULSE_SHUTDOWN_TIMEOUT",
    "GITPULSE_REFRESH_INTERVAL",
    "GITPULSE_REMOTE_TTL",
    "GITPULSE_MAX_SCAN_DEPTH",
]


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep the real user config and environment out of tests."""
    for key in GITPULSE_ENV:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(ConfigManager, "USER_CONFIG_FILE", tmp_path / "user-config.yaml")
    yield
    reset_orchestrator()


@pytest.fixture
def repo_factory(tmp_path):
    """
    Fake repositories with a scripted collector and manual clock.

    Example:
        def test_fresh(repo_factory):
            repo_factory.add_repo("app")
            orch = repo_factory.orchestrator()
            orch.run_once()
    """
    factory = RepoFactory(tmp_path)
    yield factory
    factory.cleanup()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def collector():
    return FakeCollector()
