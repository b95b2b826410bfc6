"""
Core layer -- signals, cache entries, validity and invalidation.

Everything here is synchronous and free of subprocess calls.
"""

from .signals import FreshnessSignals, SignalUnavailable, read_signals, resolve_git_dir
from .snapshot import RepoSnapshot, LocalStatus, RemoteStatus, Worktree
from .cache import CacheStore, RepoEntry, RepoView
from .validity import Validity, Partition, evaluate, partition
from .invalidation import (
    ActionKind, SignalScope, SignalSubset, PendingActionInvalidation,
    InvalidationInbox, route, parse_action_kind,
    NO_SCOPE, LOCAL_ONLY, REMOTE_ONLY, ALL_SCOPES,
)


__all__ = [
    "FreshnessSignals", "SignalUnavailable", "read_signals", "resolve_git_dir",
    "RepoSnapshot", "LocalStatus", "RemoteStatus", "Worktree",
    "CacheStore", "RepoEntry", "RepoView",
    "Validity", "Partition", "evaluate", "partition",
    "ActionKind", "SignalScope", "SignalSubset", "PendingActionInvalidation",
    "InvalidationInbox", "route", "parse_action_kind",
    "NO_SCOPE", "LOCAL_ONLY", "REMOTE_ONLY", "ALL_SCOPES",
]
