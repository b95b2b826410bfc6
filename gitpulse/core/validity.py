"""
Validity Evaluator -- Classify then act

Compares a cache entry against freshly read signals and returns an
explicit Validity tag instead of loose staleness booleans:

    FRESH          reuse everything
    LOCALLY_STALE  recompute local fields only (repo has no upstream)
    REMOTE_STALE   show cached local fields, recompute ahead/behind
    FULLY_STALE    recompute everything

Local mtimes catch locally-run mutations (commit, checkout, staging) but
not changes pushed by other machines. The remote TTL bounds how stale
ahead/behind can get without polling the network on every tick.

Evaluation is pure: no side effects, same inputs give the same tag.
"""

from enum import Enum
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Mapping

from .cache import RepoEntry
from .signals import FreshnessSignals
from .invalidation import SignalSubset, NO_SCOPE, LOCAL_ONLY, REMOTE_ONLY, ALL_SCOPES


class Validity(Enum):
    FRESH = "fresh"
    LOCALLY_STALE = "locally_stale"
    REMOTE_STALE = "remote_stale"
    FULLY_STALE = "fully_stale"

    @property
    def required_scope(self) -> SignalSubset:
        """Fields that must be collected again."""
        return _REQUIRED_SCOPE[self]

    @property
    def needs_scan(self) -> bool:
        return self is not Validity.FRESH


_REQUIRED_SCOPE: Dict[Validity, SignalSubset] = {
    Validity.FRESH: NO_SCOPE,
    Validity.LOCALLY_STALE: LOCAL_ONLY,
    Validity.REMOTE_STALE: REMOTE_ONLY,
    Validity.FULLY_STALE: ALL_SCOPES,
}


def local_signals_changed(entry: RepoEntry, current: FreshnessSignals) -> bool:
    """
    True if index, HEAD or upstream differ from the captured values.

    absent -> present and present -> absent both count as a change.
    """
    if entry.signals is None:
        return True
    return entry.signals.local_key() != current.local_key()


def evaluate(
    entry: Optional[RepoEntry],
    current: Optional[FreshnessSignals],
    now: float
) -> Validity:
    """
    Classify a cache entry.

    Args:
        entry: Cached entry, or None if the repo was never collected
        current: Signals read now, or None if SignalUnavailable was raised
        now: Current clock time (same clock as remote_ttl_deadline)

    Returns:
        Validity tag
    """
    # Unreadable metadata fails open to a rescan
    if entry is None or current is None or entry.signals is None:
        return Validity.FULLY_STALE

    if entry.local_forced or local_signals_changed(entry, current):
        if _has_no_remote_side(entry, current):
            return Validity.LOCALLY_STALE
        return Validity.FULLY_STALE

    if now >= entry.remote_ttl_deadline:
        return Validity.REMOTE_STALE

    if entry.signals.fetch_marker != current.fetch_marker:
        return Validity.REMOTE_STALE

    return Validity.FRESH


def _has_no_remote_side(entry: RepoEntry, current: FreshnessSignals) -> bool:
    """
    No upstream before or after: ahead/behind are structurally zero.

    Any upstream signal on either side means the remote half could
    have moved with HEAD, so it must be recomputed too.
    """
    if entry.snapshot.remote.has_upstream:
        return False
    return entry.signals.upstream is None and current.upstream is None


@dataclass
class Partition:
    """Repositories grouped by the work they need."""
    full: List[Path] = field(default_factory=list)
    local_only: List[Path] = field(default_factory=list)
    remote_only: List[Path] = field(default_factory=list)
    fresh: List[Path] = field(default_factory=list)

    def add(self, path: Path, validity: Validity) -> None:
        if validity is Validity.FULLY_STALE:
            self.full.append(path)
        elif validity is Validity.LOCALLY_STALE:
            self.local_only.append(path)
        elif validity is Validity.REMOTE_STALE:
            self.remote_only.append(path)
        else:
            self.fresh.append(path)

    @property
    def to_scan(self) -> List[Path]:
        return self.full + self.local_only + self.remote_only

    def to_dict(self) -> dict:
        return {
            "full": len(self.full),
            "local_only": len(self.local_only),
            "remote_only": len(self.remote_only),
            "fresh": len(self.fresh),
        }


def partition(verdicts: Mapping[Path, Validity]) -> Partition:
    """Group per-repo verdicts into a Partition."""
    result = Partition()
    for path, validity in verdicts.items():
        result.add(path, validity)
    return result
