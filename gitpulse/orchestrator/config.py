"""
OrchestratorConfig -- Engine tuning for scan execution

Loads parallelization settings from environment variables.
Defaults work on any machine.

Environment variables:
- GITPULSE_PARALLEL_ENABLED: Collect repos in parallel (default: true)
- GITPULSE_COLLECTOR_WORKERS: Thread pool size for collection (default: 8)
- GITPULSE_COLLECTOR_TIMEOUT: Per git command timeout in seconds (default: 5)
- GITPULSE_SHUTDOWN_TIMEOUT: Seconds to wait for a running scan on shutdown (default: 10)
"""

import os
from dataclasses import dataclass


@dataclass
class OrchestratorConfig:
    """
    Configuration for the scan orchestrator.

    Loaded from environment variables with sensible defaults.
    Scan cadence (refresh interval, remote TTL) lives in the
    application config, not here.
    """

    # Feature toggle
    enabled: bool = True                   # False = sequential collection

    # Worker pool size
    collector_workers: int = 8             # ThreadPool for git subprocesses

    # Timeouts
    collector_timeout: float = 5.0         # Per git command (seconds)
    shutdown_timeout: float = 10.0         # Wait for running scan (seconds)

    @classmethod
    def from_env(cls) -> 'OrchestratorConfig':
        """Load configuration from environment variables."""
        return cls(
            enabled=_get_bool_env("GITPULSE_PARALLEL_ENABLED", True),
            collector_workers=_get_int_env("GITPULSE_COLLECTOR_WORKERS", 8),
            collector_timeout=_get_float_env("GITPULSE_COLLECTOR_TIMEOUT", 5.0),
            shutdown_timeout=_get_float_env("GITPULSE_SHUTDOWN_TIMEOUT", 10.0),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if self.collector_workers < 1:
            raise ValueError("GITPULSE_COLLECTOR_WORKERS must be >= 1")
        if self.collector_timeout <= 0:
            raise ValueError("GITPULSE_COLLECTOR_TIMEOUT must be > 0")
        if self.shutdown_timeout < 0:
            raise ValueError("GITPULSE_SHUTDOWN_TIMEOUT must be >= 0")

    def to_dict(self) -> dict:
        """Serialize for display/logging."""
        return {
            "enabled": self.enabled,
            "collector_workers": self.collector_workers,
            "collector_timeout": self.collector_timeout,
            "shutdown_timeout": self.shutdown_timeout,
        }


def _get_bool_env(key: str, default: bool) -> bool:
    """Get boolean from environment variable."""
    value = os.environ.get(key, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_int_env(key: str, default: int) -> int:
    """Get integer from environment variable."""
    value = os.environ.get(key, "")
    if value:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _get_float_env(key: str, default: float) -> float:
    """Get float from environment variable."""
    value = os.environ.get(key, "")
    if value:
        try:
            return float(value)
        except ValueError:
            pass
    return default
