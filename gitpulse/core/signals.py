"""
Freshness Signals -- Cheap change detection for repositories

Reads per-repository metadata timestamps instead of running git:
- index: working-tree index (.git/index)
- head: HEAD reference (.git/HEAD)
- upstream: newest remote-tracking ref (.git/refs/remotes, else packed-refs)
- fetch_marker: last fetch (.git/FETCH_HEAD)

Pure stat() I/O. Never spawns a subprocess.
A missing source is None; unreadable metadata raises SignalUnavailable.
"""

import os
import logging
from pathlib import Path
from typing import Optional
from dataclasses import dataclass


logger = logging.getLogger(__name__)


class SignalUnavailable(Exception):
    """Repository metadata could not be read at all."""

    def __init__(self, repo_path: Path, reason: str):
        super().__init__(f"{repo_path}: {reason}")
        self.repo_path = repo_path
        self.reason = reason


@dataclass(frozen=True)
class FreshnessSignals:
    """
    Timestamps observed for one repository (nanosecond mtimes).

    None means the source does not exist (no upstream, never fetched).
    """
    index: Optional[int] = None
    head: Optional[int] = None
    upstream: Optional[int] = None
    fetch_marker: Optional[int] = None

    def local_key(self) -> tuple:
        """Signals that track local state (upstream ref included)."""
        return (self.index, self.head, self.upstream)

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "head": self.head,
            "upstream": self.upstream,
            "fetch_marker": self.fetch_marker,
        }


def resolve_git_dir(repo_path: Path) -> Path:
    """
    Locate the git directory of a repository.

    Handles the worktree/submodule layout where .git is a file
    containing "gitdir: <path>".

    Raises:
        SignalUnavailable: If no readable git directory exists
    """
    dot_git = Path(repo_path) / ".git"

    try:
        if dot_git.is_dir():
            return dot_git

        with open(dot_git, encoding="utf-8") as f:
            first_line = f.readline().strip()
    except OSError as e:
        raise SignalUnavailable(repo_path, f"cannot read .git: {e}") from e

    if not first_line.startswith("gitdir:"):
        raise SignalUnavailable(repo_path, "malformed .git file")

    git_dir = Path(first_line[len("gitdir:"):].strip())
    if not git_dir.is_absolute():
        git_dir = Path(repo_path) / git_dir

    if not git_dir.is_dir():
        raise SignalUnavailable(repo_path, f"gitdir {git_dir} does not exist")

    return git_dir


def read_signals(repo_path: Path) -> FreshnessSignals:
    """
    Read the four freshness signals of a repository.

    Raises:
        SignalUnavailable: If the repository metadata is unreadable
    """
    git_dir = resolve_git_dir(repo_path)

    try:
        upstream = latest_mtime(git_dir / "refs" / "remotes")
        if upstream is None:
            upstream = file_mtime(git_dir / "packed-refs")

        return FreshnessSignals(
            index=file_mtime(git_dir / "index"),
            head=_required_mtime(repo_path, git_dir / "HEAD"),
            upstream=upstream,
            fetch_marker=file_mtime(git_dir / "FETCH_HEAD"),
        )
    except SignalUnavailable:
        raise
    except OSError as e:
        # Permission denied, or repo removed mid-read
        raise SignalUnavailable(repo_path, str(e)) from e


def file_mtime(path: Path) -> Optional[int]:
    """mtime of a file in nanoseconds, or None if it does not exist."""
    try:
        return os.stat(path).st_mtime_ns
    except (FileNotFoundError, NotADirectoryError):
        return None


def latest_mtime(directory: Path) -> Optional[int]:
    """Newest file mtime anywhere below directory, or None."""
    latest: Optional[int] = None

    try:
        entries = list(os.scandir(directory))
    except (FileNotFoundError, NotADirectoryError):
        return None

    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                ts = latest_mtime(Path(entry.path))
            else:
                ts = entry.stat(follow_symlinks=False).st_mtime_ns
        except FileNotFoundError:
            # Ref removed between scandir and stat (e.g. remote pruned)
            continue

        if ts is not None and (latest is None or ts > latest):
            latest = ts

    return latest


def _required_mtime(repo_path: Path, path: Path) -> int:
    """HEAD always exists in a valid repository."""
    try:
        return os.stat(path).st_mtime_ns
    except OSError as e:
        logger.debug("HEAD unreadable for %s: %s", repo_path, e)
        raise SignalUnavailable(repo_path, f"cannot stat {path.name}: {e}") from e
