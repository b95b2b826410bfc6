"""
Cache Store -- One entry per tracked repository

Single-writer pattern:
- Only the orchestrator owner thread calls the mutating methods
  (reconcile, apply_invalidation, commit_success, commit_failure)
- Readers get immutable RepoView copies from snapshot() / view()

Entries are frozen dataclasses. Every update builds a new entry and swaps
it in under the lock, so a reader never observes a half-written entry.
Local and remote halves can still be replaced independently.
"""

import threading
from pathlib import Path
from dataclasses import dataclass, replace
from typing import Optional, Dict, List, Iterable, Tuple

from .signals import FreshnessSignals
from .snapshot import RepoSnapshot, LocalStatus, RemoteStatus
from .invalidation import SignalScope, SignalSubset, NO_SCOPE


EXPIRED = float("-inf")


@dataclass(frozen=True)
class RepoEntry:
    """
    Cached status for one repository.

    Staleness is never stored here: the validity evaluator derives it
    from these fields and the current signals.
    """
    path: Path
    snapshot: RepoSnapshot
    signals: Optional[FreshnessSignals]
    remote_ttl_deadline: float             # clock time remote fields expire
    local_forced: bool = False             # set by invalidation or failure
    last_error: Optional[str] = None
    local_checked_at: Optional[float] = None
    remote_checked_at: Optional[float] = None

    @property
    def name(self) -> str:
        return self.path.name


def mark_stale(entry: RepoEntry, scopes: SignalSubset) -> RepoEntry:
    """
    Copy of entry with the given scopes forced stale.

    Remote scope expires the TTL deadline; local scope sets the forced flag.
    """
    if SignalScope.REMOTE in scopes:
        entry = replace(entry, remote_ttl_deadline=EXPIRED)
    if SignalScope.LOCAL in scopes:
        entry = replace(entry, local_forced=True)
    return entry


@dataclass(frozen=True)
class RepoView:
    """Read-only view published to the dashboard builder."""
    path: Path
    snapshot: Optional[RepoSnapshot]      # None until a collection succeeded
    last_error: Optional[str] = None
    local_checked_at: Optional[float] = None
    remote_checked_at: Optional[float] = None

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def has_error(self) -> bool:
        return self.last_error is not None

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "error": self.last_error,
            "local_checked_at": self.local_checked_at,
            "remote_checked_at": self.remote_checked_at,
        }


class CacheStore:
    """
    Status cache keyed by canonical repository path.

    The cache never invents repositories: paths enter only through
    reconcile(), fed by the discoverer.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tracked: List[Path] = []
        self._entries: Dict[Path, RepoEntry] = {}
        # Errors of tracked paths whose first collection failed (no entry yet)
        self._first_errors: Dict[Path, str] = {}

    # -------------------------------------------------------------------------
    # Owner-only writes
    # -------------------------------------------------------------------------

    def reconcile(self, paths: Iterable[Path]) -> Tuple[List[Path], List[Path]]:
        """
        Replace the tracked set with the discoverer's list.

        Returns:
            (added, removed) paths. Removed paths lose their entry.
        """
        new_paths: List[Path] = []
        seen = set()
        for path in paths:
            if path not in seen:
                seen.add(path)
                new_paths.append(path)

        with self._lock:
            old = set(self._tracked)
            added = [p for p in new_paths if p not in old]
            removed = [p for p in self._tracked if p not in seen]

            for path in removed:
                self._entries.pop(path, None)
                self._first_errors.pop(path, None)

            self._tracked = new_paths

        return added, removed

    def apply_invalidation(self, path: Path, scopes: SignalSubset) -> bool:
        """
        Force the given scopes stale on an existing entry.

        Returns False when there is no entry (it is already due for a
        full collection).
        """
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                return False

            self._entries[path] = mark_stale(entry, scopes)
            return True

    def commit_success(
        self,
        path: Path,
        signals: Optional[FreshnessSignals],
        completed_at: float,
        remote_ttl: float,
        local: Optional[LocalStatus] = None,
        remote: Optional[RemoteStatus] = None,
    ) -> RepoEntry:
        """
        Store freshly collected fields.

        Args:
            signals: Signals read before collection started
            completed_at: Clock time the collection finished
            remote_ttl: Seconds until remote fields expire
            local: New local fields, or None to keep the cached ones
            remote: New remote fields, or None to keep the cached ones
        """
        with self._lock:
            previous = self._entries.get(path)

            if previous is None:
                entry = RepoEntry(
                    path=path,
                    snapshot=RepoSnapshot().merged(local=local, remote=remote),
                    signals=signals,
                    remote_ttl_deadline=EXPIRED,
                )
            else:
                entry = replace(
                    previous,
                    snapshot=previous.snapshot.merged(local=local, remote=remote),
                    signals=signals,
                    last_error=None,
                )

            if local is not None:
                entry = replace(entry, local_forced=False, local_checked_at=completed_at)
            if remote is not None:
                entry = replace(
                    entry,
                    remote_ttl_deadline=completed_at + remote_ttl,
                    remote_checked_at=completed_at,
                )

            self._entries[path] = entry
            self._first_errors.pop(path, None)
            return entry

    def commit_failure(
        self,
        path: Path,
        error: str,
        scope: SignalSubset = NO_SCOPE,
    ) -> Optional[RepoEntry]:
        """
        Record a failed collection.

        The previous snapshot and signals stay untouched. The scope that
        failed is forced stale so the repository is retried on the next
        cycle even if its signals still match.
        """
        with self._lock:
            previous = self._entries.get(path)
            if previous is None:
                self._first_errors[path] = error
                return None

            entry = replace(mark_stale(previous, scope), last_error=error)
            self._entries[path] = entry
            return entry

    # -------------------------------------------------------------------------
    # Reads (any thread)
    # -------------------------------------------------------------------------

    def get(self, path: Path) -> Optional[RepoEntry]:
        with self._lock:
            return self._entries.get(path)

    def tracked(self) -> List[Path]:
        with self._lock:
            return list(self._tracked)

    def is_tracked(self, path: Path) -> bool:
        with self._lock:
            return path in self._tracked

    def view(self, path: Path) -> Optional[RepoView]:
        with self._lock:
            if path not in self._tracked:
                return None
            return self._view_locked(path)

    def snapshot(self) -> Dict[Path, RepoView]:
        """Views of every tracked repository, in discovery order."""
        with self._lock:
            return {path: self._view_locked(path) for path in self._tracked}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _view_locked(self, path: Path) -> RepoView:
        entry = self._entries.get(path)
        if entry is None:
            return RepoView(path=path, snapshot=None, last_error=self._first_errors.get(path))

        return RepoView(
            path=path,
            snapshot=entry.snapshot,
            last_error=entry.last_error,
            local_checked_at=entry.local_checked_at,
            remote_checked_at=entry.remote_checked_at,
        )
