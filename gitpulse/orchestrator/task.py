"""
Task -- Triggers, collection work and results

Defines the values that flow through a scan cycle:
- ScanTrigger: why a scan was requested, and for which repos
- CollectionTask: one repository to collect, with its scope
- CollectionResult: outcome of collecting one repository
- ScanReport: summary of one completed cycle

Design principles:
- Triggers and tasks are immutable after creation
- Triggers are fungible: the coalescer may merge them freely
- Results are serializable for reporting
"""

import itertools
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, FrozenSet, List, Dict, Any
from datetime import datetime, timezone
import xxhash

from ..core.signals import FreshnessSignals
from ..core.snapshot import LocalStatus, RemoteStatus
from ..core.invalidation import SignalSubset, ActionKind


class TriggerCause(Enum):
    """What asked for a scan."""
    STARTUP = "startup"
    PERIODIC = "periodic"
    MANUAL = "manual"
    ACTION_COMPLETED = "action_completed"
    FOLLOW_UP = "follow_up"      # Coalesced triggers, re-admitted after a scan


class CycleState(Enum):
    """Orchestrator phase within one scan cycle."""
    IDLE = "idle"
    QUEUED = "queued"            # Admitted, waiting for the owner thread
    ADMITTED = "admitted"
    SCANNING = "scanning"
    COMMITTING = "committing"


class CollectionStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanTrigger:
    """
    Request to rescan.

    targets=None means every tracked repository.
    """
    cause: TriggerCause
    targets: Optional[FrozenSet[Path]] = None
    action_kind: Optional[ActionKind] = None

    # Identity / observability
    id: str = field(default_factory=lambda: _generate_id())
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def is_restricted(self) -> bool:
        return self.targets is not None


@dataclass(frozen=True)
class CollectionTask:
    """One repository to collect in the current cycle."""
    repo_path: Path
    scope: SignalSubset
    signals: Optional[FreshnessSignals]    # Read before collection


@dataclass
class CollectionResult:
    """Outcome of collecting one repository."""
    repo_path: Path
    scope: SignalSubset
    status: CollectionStatus
    local: Optional[LocalStatus] = None
    remote: Optional[RemoteStatus] = None
    signals: Optional[FreshnessSignals] = None
    error: Optional[str] = None

    # Timing (clock seconds, same clock as TTL deadlines)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.status == CollectionStatus.COMPLETED

    @property
    def failed(self) -> bool:
        return self.status == CollectionStatus.FAILED

    @property
    def duration_ms(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_path": str(self.repo_path),
            "scope": sorted(s.value for s in self.scope),
            "status": self.status.value,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class ScanReport:
    """Summary of one completed scan cycle."""
    trigger: ScanTrigger
    tracked: int = 0
    fresh: List[Path] = field(default_factory=list)
    collected: List[CollectionResult] = field(default_factory=list)
    added: List[Path] = field(default_factory=list)
    vanished: List[Path] = field(default_factory=list)
    invalidated: List[Path] = field(default_factory=list)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def failures(self) -> List[CollectionResult]:
        return [r for r in self.collected if r.failed]

    @property
    def duration_ms(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trigger": self.trigger.cause.value,
            "tracked": self.tracked,
            "fresh": len(self.fresh),
            "collected": [r.to_dict() for r in self.collected],
            "failed": len(self.failures),
            "added": [str(p) for p in self.added],
            "vanished": [str(p) for p in self.vanished],
            "invalidated": [str(p) for p in self.invalidated],
            "duration_ms": self.duration_ms,
        }


_id_counter = itertools.count()


def _generate_id() -> str:
    """Generate unique trigger ID using xxhash (timestamp + sequence)."""
    seed = f"{datetime.now(timezone.utc).isoformat()}:{next(_id_counter)}"
    return xxhash.xxh64(seed.encode()).hexdigest()[:12]


# Trigger factory functions for each cause

def startup_trigger() -> ScanTrigger:
    """Initial scan when the dashboard starts."""
    return ScanTrigger(cause=TriggerCause.STARTUP)


def periodic_trigger() -> ScanTrigger:
    """Timer tick: every tracked repo."""
    return ScanTrigger(cause=TriggerCause.PERIODIC)


def manual_trigger() -> ScanTrigger:
    """User pressed refresh: every tracked repo."""
    return ScanTrigger(cause=TriggerCause.MANUAL)


def follow_up_trigger() -> ScanTrigger:
    """Merged triggers re-admitted after a scan: every tracked repo."""
    return ScanTrigger(cause=TriggerCause.FOLLOW_UP)


def action_trigger(repo_path: Path, action_kind: ActionKind) -> ScanTrigger:
    """
    Completed action: only the affected repository.

    Example:
        trigger = action_trigger(Path("/src/app"), ActionKind.PUSH)
    """
    return ScanTrigger(
        cause=TriggerCause.ACTION_COMPLETED,
        targets=frozenset({repo_path}),
        action_kind=action_kind,
    )
