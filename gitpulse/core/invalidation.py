"""
Invalidation Router -- Selective refresh after mutating actions

Maps a completed action to the signal subset it makes stale:
    fetch  -> {remote}
    pull   -> {local, remote}
    push   -> {remote}
    commit -> {local}
    other  -> {local, remote}

Invalidations are fed by action COMPLETION events, never by submission:
invalidating before the action runs would race the action itself.
A completion signal delayed by process buffering costs at most one
extra refresh cycle. That is accepted.
"""

import threading
from enum import Enum
from pathlib import Path
from dataclasses import dataclass
from typing import Dict, FrozenSet, Union


class SignalScope(Enum):
    """Half of a snapshot that can go stale independently."""
    LOCAL = "local"
    REMOTE = "remote"


SignalSubset = FrozenSet[SignalScope]

NO_SCOPE: SignalSubset = frozenset()
LOCAL_ONLY: SignalSubset = frozenset({SignalScope.LOCAL})
REMOTE_ONLY: SignalSubset = frozenset({SignalScope.REMOTE})
ALL_SCOPES: SignalSubset = frozenset({SignalScope.LOCAL, SignalScope.REMOTE})


class ActionKind(Enum):
    """Mutating actions the dispatcher reports on completion."""
    FETCH = "fetch"
    PULL = "pull"
    PUSH = "push"
    COMMIT = "commit"
    GENERIC = "generic"


_ROUTES: Dict[ActionKind, SignalSubset] = {
    ActionKind.FETCH: REMOTE_ONLY,
    ActionKind.PULL: ALL_SCOPES,
    ActionKind.PUSH: REMOTE_ONLY,
    ActionKind.COMMIT: LOCAL_ONLY,
    ActionKind.GENERIC: ALL_SCOPES,
}

# Dispatcher command names that map onto a known kind
_ALIASES: Dict[str, ActionKind] = {
    "git_fetch": ActionKind.FETCH,
    "pull_rebase": ActionKind.PULL,
    "git_pull": ActionKind.PULL,
    "git_pull_rebase": ActionKind.PULL,
    "git_push": ActionKind.PUSH,
    "git_commit": ActionKind.COMMIT,
}


def parse_action_kind(value: Union[ActionKind, str]) -> ActionKind:
    """Coerce a dispatcher action name. Unknown names become GENERIC."""
    if isinstance(value, ActionKind):
        return value

    name = str(value).strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return ActionKind(name)
    except ValueError:
        return _ALIASES.get(name, ActionKind.GENERIC)


def route(action_kind: Union[ActionKind, str]) -> SignalSubset:
    """Signal subset a completed action forces stale."""
    return _ROUTES[parse_action_kind(action_kind)]


@dataclass(frozen=True)
class PendingActionInvalidation:
    """Completed action awaiting application. Consumed once."""
    repo_path: Path
    action_kind: ActionKind

    @property
    def scopes(self) -> SignalSubset:
        return route(self.action_kind)


class InvalidationInbox:
    """
    Pending invalidations waiting for the cache owner.

    Producers (the action dispatcher) post from any thread.
    The owner drains at the start of its next cycle.

    One slot per repository; repeated actions merge their scopes,
    so the inbox never grows beyond the number of tracked repos.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Dict[Path, SignalSubset] = {}

    def post(self, invalidation: PendingActionInvalidation) -> SignalSubset:
        """Record an invalidation. Returns the merged scopes for that repo."""
        with self._lock:
            merged = self._pending.get(invalidation.repo_path, NO_SCOPE) | invalidation.scopes
            self._pending[invalidation.repo_path] = merged
            return merged

    def drain(self) -> Dict[Path, SignalSubset]:
        """Take every pending invalidation."""
        with self._lock:
            pending = self._pending
            self._pending = {}
            return pending

    def peek(self, repo_path: Path) -> SignalSubset:
        """Scopes waiting for one repository, without consuming them."""
        with self._lock:
            return self._pending.get(repo_path, NO_SCOPE)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)
