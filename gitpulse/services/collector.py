"""
Status Collector contract

The orchestrator asks a collector for one repository and a scope
(local, remote or both). Collectors must be idempotent and must not
modify the repository.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

from ..core.snapshot import LocalStatus, RemoteStatus
from ..core.invalidation import SignalSubset, SignalScope


class CollectionFailed(Exception):
    """Status command failed or timed out for one repository."""

    def __init__(self, repo_path: Path, reason: str):
        super().__init__(f"{Path(repo_path).name}: {reason}")
        self.repo_path = repo_path
        self.reason = reason


@dataclass(frozen=True)
class CollectedStatus:
    """Fields a collector produced. A half is None if it was not requested."""
    local: Optional[LocalStatus] = None
    remote: Optional[RemoteStatus] = None

    def covers(self, scope: SignalSubset) -> bool:
        """True if every requested half is present."""
        if SignalScope.LOCAL in scope and self.local is None:
            return False
        if SignalScope.REMOTE in scope and self.remote is None:
            return False
        return True


class StatusCollector(ABC):
    """Computes repository status for the requested scope."""

    @abstractmethod
    def collect(self, repo_path: Path, scope: SignalSubset) -> CollectedStatus:
        """
        Collect status for one repository.

        Raises:
            CollectionFailed: If status could not be computed
        """
