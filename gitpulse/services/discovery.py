"""
Repository Discovery -- Find git repositories under watch directories

A directory holding .git (directory or gitdir file) is a repository;
the walk records it and does not descend further. Hidden and build
directories are skipped. Unreadable directories are skipped silently.
"""

import os
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set


logger = logging.getLogger(__name__)

SKIP_DIRS: Set[str] = {
    "node_modules",
    ".build",
    "Pods",
    "DerivedData",
    "vendor",
    "venv",
    "dist",
    "build",
    ".next",
    "target",
    "__pycache__",
    ".gradle",
    ".cache",
}

DEFAULT_MAX_DEPTH = 3


def find_repos(directories: Iterable[Path], max_depth: int = DEFAULT_MAX_DEPTH) -> List[Path]:
    """
    Recursively find repositories up to max_depth below each directory.

    Returns:
        Canonical paths, sorted and deduplicated
    """
    found: Set[Path] = set()

    for directory in directories:
        directory = Path(directory)
        if not directory.is_dir():
            logger.debug("Watch directory missing: %s", directory)
            continue
        _walk(directory, 0, max_depth, found)

    return sorted(found)


def _walk(directory: Path, depth: int, max_depth: int, found: Set[Path]) -> None:
    if depth > max_depth:
        return

    if (directory / ".git").exists():
        found.add(directory.resolve())
        return

    try:
        entries = list(os.scandir(directory))
    except OSError:
        return

    for entry in entries:
        name = entry.name
        if name.startswith(".") or name in SKIP_DIRS:
            continue
        try:
            if not entry.is_dir():
                continue
        except OSError:
            continue
        _walk(Path(entry.path), depth + 1, max_depth, found)


class RepoDiscoverer:
    """
    Callable discoverer handed to the orchestrator.

    Filters out repositories whose directory name is in ignored_repos.
    """

    def __init__(
        self,
        directories: Iterable[Path],
        max_depth: int = DEFAULT_MAX_DEPTH,
        ignored_repos: Optional[Iterable[str]] = None
    ):
        self.directories = [Path(d) for d in directories]
        self.max_depth = max_depth
        self.ignored_repos = set(ignored_repos or [])

    def __call__(self) -> List[Path]:
        return [
            path for path in find_repos(self.directories, self.max_depth)
            if path.name not in self.ignored_repos
        ]
