"""
Snapshot -- Immutable repository status values

Split along the staleness boundary:
- LocalStatus: derivable from the local repository alone
- RemoteStatus: requires comparison against the upstream

Both are frozen so a snapshot can be shared with readers
while the owner builds its replacement.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Dict, Any


DETACHED = "HEAD"


@dataclass(frozen=True)
class Worktree:
    """One entry of `git worktree list`."""
    path: str
    branch: str = ""
    detached: bool = False
    bare: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "branch": self.branch,
            "detached": self.detached,
            "bare": self.bare,
        }


@dataclass(frozen=True)
class LocalStatus:
    """Branch, working tree and stash state."""
    branch: str = ""
    is_detached: bool = False
    uncommitted_count: int = 0
    stash_count: int = 0
    worktrees: Tuple[Worktree, ...] = ()

    @property
    def dirty(self) -> bool:
        return self.uncommitted_count > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "branch": self.branch,
            "is_detached": self.is_detached,
            "uncommitted_count": self.uncommitted_count,
            "stash_count": self.stash_count,
            "worktrees": [w.to_dict() for w in self.worktrees],
        }


@dataclass(frozen=True)
class RemoteStatus:
    """Ahead/behind relative to the upstream."""
    has_remote: bool = False
    has_upstream: bool = False
    ahead: int = 0     # unpushed commits
    behind: int = 0    # commits to pull

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_remote": self.has_remote,
            "has_upstream": self.has_upstream,
            "ahead": self.ahead,
            "behind": self.behind,
        }


@dataclass(frozen=True)
class RepoSnapshot:
    """Complete status of one repository."""
    local: LocalStatus = field(default_factory=LocalStatus)
    remote: RemoteStatus = field(default_factory=RemoteStatus)

    @property
    def needs_attention(self) -> bool:
        return self.local.dirty or self.remote.ahead > 0 or self.remote.behind > 0

    @property
    def urgency(self) -> int:
        """3 = dirty and unpushed, 2 = dirty, 1 = unpushed, 0 = clean."""
        return (2 if self.local.dirty else 0) + (1 if self.remote.ahead > 0 else 0)

    def merged(
        self,
        local: Optional[LocalStatus] = None,
        remote: Optional[RemoteStatus] = None
    ) -> "RepoSnapshot":
        """New snapshot with the given halves replaced."""
        return replace(
            self,
            local=local if local is not None else self.local,
            remote=remote if remote is not None else self.remote,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "local": self.local.to_dict(),
            "remote": self.remote.to_dict(),
        }
