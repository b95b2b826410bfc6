"""
Services layer -- default collaborators of the scan engine.
"""

from .collector import StatusCollector, CollectedStatus, CollectionFailed
from .git import GitStatusCollector, parse_worktrees
from .discovery import RepoDiscoverer, find_repos, SKIP_DIRS

__all__ = [
    "StatusCollector",
    "CollectedStatus",
    "CollectionFailed",
    "GitStatusCollector",
    "parse_worktrees",
    "RepoDiscoverer",
    "find_repos",
    "SKIP_DIRS",
]
