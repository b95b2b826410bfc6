"""
Git Status Collector -- Repository status via the git CLI

Each status field comes from one short git command:
- branch:       rev-parse --abbrev-ref HEAD   ("HEAD" = detached)
- uncommitted:  status --porcelain
- stash:        stash list
- worktrees:    worktree list --porcelain
- remote:       remote
- upstream:     rev-parse --abbrev-ref @{upstream}
- ahead/behind: rev-list --count @{upstream}..HEAD / HEAD..@{upstream}

Every command runs with a timeout so a hung repository bounds the
scan duration instead of stalling it.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from .collector import StatusCollector, CollectedStatus, CollectionFailed
from ..core.snapshot import LocalStatus, RemoteStatus, Worktree, DETACHED
from ..core.invalidation import SignalSubset, SignalScope


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


class GitStatusCollector(StatusCollector):
    """Collects status by running read-only git commands."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, git_binary: str = "git"):
        self.timeout = timeout
        self.git_binary = git_binary

    def collect(self, repo_path: Path, scope: SignalSubset) -> CollectedStatus:
        local = self.collect_local(repo_path) if SignalScope.LOCAL in scope else None
        remote = self.collect_remote(repo_path) if SignalScope.REMOTE in scope else None
        return CollectedStatus(local=local, remote=remote)

    def collect_local(self, repo_path: Path) -> LocalStatus:
        """Branch, uncommitted count, stash count and worktrees."""
        branch = self._run_git(repo_path, ["rev-parse", "--abbrev-ref", "HEAD"])
        if branch is None:
            # Unborn branch: HEAD names a ref that has no commit yet
            branch = self._run_git(repo_path, ["symbolic-ref", "--short", "HEAD"], required=True)
        branch = branch.strip()

        porcelain = self._run_git(repo_path, ["status", "--porcelain"], required=True)
        stash = self._run_git(repo_path, ["stash", "list"]) or ""
        worktree_raw = self._run_git(repo_path, ["worktree", "list", "--porcelain"]) or ""

        return LocalStatus(
            branch=branch,
            is_detached=branch == DETACHED,
            uncommitted_count=_count_lines(porcelain),
            stash_count=_count_lines(stash),
            worktrees=tuple(parse_worktrees(worktree_raw)),
        )

    def collect_remote(self, repo_path: Path) -> RemoteStatus:
        """Remote presence and ahead/behind against the upstream."""
        remotes = self._run_git(repo_path, ["remote"], required=True)
        if not remotes.strip():
            return RemoteStatus()

        upstream = self._run_git(repo_path, ["rev-parse", "--abbrev-ref", "@{upstream}"])
        if upstream is None or not upstream.strip():
            # Remote configured, branch not tracking anything
            return RemoteStatus(has_remote=True)

        ahead = self._run_git(repo_path, ["rev-list", "--count", "@{upstream}..HEAD"], required=True)
        behind = self._run_git(repo_path, ["rev-list", "--count", "HEAD..@{upstream}"], required=True)

        return RemoteStatus(
            has_remote=True,
            has_upstream=True,
            ahead=_parse_count(repo_path, ahead),
            behind=_parse_count(repo_path, behind),
        )

    def _run_git(self, repo_path: Path, args: List[str], required: bool = False) -> Optional[str]:
        """
        Run a git command and return stdout.

        A non-zero exit returns None, or raises CollectionFailed when the
        command is required. Timeouts and a missing git binary always raise.
        """
        try:
            result = subprocess.run(
                [self.git_binary] + args,
                cwd=repo_path,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CollectionFailed(repo_path, f"git {args[0]} timed out after {self.timeout}s") from e
        except (FileNotFoundError, NotADirectoryError) as e:
            raise CollectionFailed(repo_path, f"cannot run git: {e}") from e
        except OSError as e:
            raise CollectionFailed(repo_path, str(e)) from e

        if result.returncode != 0:
            if required:
                first = (result.stderr or "").strip().splitlines()
                reason = first[0] if first else f"git {args[0]} exited {result.returncode}"
                raise CollectionFailed(repo_path, reason)
            logger.debug("git %s failed in %s (exit %d)", " ".join(args), repo_path, result.returncode)
            return None

        return result.stdout


def parse_worktrees(raw: str) -> List[Worktree]:
    """Parse `git worktree list --porcelain` output."""
    worktrees: List[Worktree] = []
    current: dict = {}

    def flush():
        if current.get("path"):
            worktrees.append(Worktree(
                path=current["path"],
                branch=current.get("branch", ""),
                detached=current.get("detached", False),
                bare=current.get("bare", False),
            ))
        current.clear()

    for line in raw.splitlines():
        line = line.strip()
        if not line:
            flush()
            continue

        if line.startswith("worktree "):
            flush()
            current["path"] = line[len("worktree "):]
        elif line.startswith("branch "):
            branch = line[len("branch "):]
            if branch.startswith("refs/heads/"):
                branch = branch[len("refs/heads/"):]
            current["branch"] = branch
        elif line == "detached":
            current["detached"] = True
        elif line == "bare":
            current["bare"] = True

    flush()
    return worktrees


def _count_lines(output: Optional[str]) -> int:
    if not output:
        return 0
    return sum(1 for line in output.splitlines() if line.strip())


def _parse_count(repo_path: Path, output: str) -> int:
    """rev-list --count output. Anything but a number is a failed collection."""
    try:
        return int(output.strip())
    except ValueError as e:
        raise CollectionFailed(repo_path, f"unexpected rev-list output: {output.strip()!r}") from e
