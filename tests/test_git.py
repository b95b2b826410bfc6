"""
Tests for the Git Status Collector

Tests verify:
- Local fields from a real repository (branch, changes, stash)
- Detached HEAD and unborn branches
- Remote fields: no remote, no upstream, ahead/behind
- Worktree porcelain parsing
- Failures surface as CollectionFailed

Note:
- Tests marked 'requires_git' skip if git is not installed
"""

import subprocess
from pathlib import Path

import pytest

from gitpulse.core.invalidation import LOCAL_ONLY, REMOTE_ONLY, ALL_SCOPES
from gitpulse.core.snapshot import RemoteStatus, Worktree
from gitpulse.services.collector import CollectionFailed
from gitpulse.services.git import GitStatusCollector, parse_worktrees


def git_is_available() -> bool:
    """Check if git is installed and working."""
    try:
        result = subprocess.run(
            ["git", "--version"],
            capture_output=True,
            text=True,
            timeout=5
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


# Decorator for tests that require git
requires_git = pytest.mark.skipif(
    not git_is_available(),
    reason="Git is not installed or not available"
)


def git(repo: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=repo, capture_output=True, text=True, check=True)
    return result.stdout


def init_repo(repo: Path, commit: bool = True) -> Path:
    repo.mkdir(parents=True)
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo, "config", "user.email", "test@test.com")
    git(repo, "config", "user.name", "Test User")
    git(repo, "config", "commit.gpgsign", "false")
    if commit:
        (repo / "README.md").write_text("# Test")
        git(repo, "add", ".")
        git(repo, "commit", "-q", "-m", "Initial commit")
    return repo


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def temp_git_repo(tmp_path):
    """Create a temporary git repository with one commit."""
    if not git_is_available():
        pytest.skip("Git is not available")
    try:
        return init_repo(tmp_path / "test_repo")
    except subprocess.CalledProcessError:
        pytest.skip("Could not create git repository")


@pytest.fixture
def tracked_repo(tmp_path):
    """Repository tracking a branch on a local bare remote."""
    if not git_is_available():
        pytest.skip("Git is not available")
    try:
        remote = tmp_path / "remote.git"
        subprocess.run(["git", "init", "-q", "--bare", str(remote)], capture_output=True, check=True)
        repo = init_repo(tmp_path / "work")
        git(repo, "remote", "add", "origin", str(remote))
        git(repo, "push", "-q", "-u", "origin", "main")
        return repo
    except subprocess.CalledProcessError:
        pytest.skip("Could not create git repository")


@pytest.fixture
def collector():
    return GitStatusCollector(timeout=10)


# ============================================================================
# LOCAL STATUS (Requires git)
# ============================================================================

@requires_git
class TestLocalStatus:

    def test_clean_repo(self, temp_git_repo, collector):
        local = collector.collect_local(temp_git_repo)

        assert local.branch == "main"
        assert not local.is_detached
        assert local.uncommitted_count == 0
        assert local.stash_count == 0
        assert len(local.worktrees) == 1

    def test_uncommitted_changes(self, temp_git_repo, collector):
        (temp_git_repo / "README.md").write_text("changed")
        (temp_git_repo / "new.txt").write_text("new")

        assert collector.collect_local(temp_git_repo).uncommitted_count == 2

    def test_stash(self, temp_git_repo, collector):
        (temp_git_repo / "README.md").write_text("stashed")
        git(temp_git_repo, "stash", "-q")

        local = collector.collect_local(temp_git_repo)

        assert local.stash_count == 1
        assert local.uncommitted_count == 0

    def test_detached_head(self, temp_git_repo, collector):
        git(temp_git_repo, "checkout", "-q", "--detach")

        local = collector.collect_local(temp_git_repo)

        assert local.is_detached
        assert local.branch == "HEAD"

    def test_unborn_branch(self, tmp_path, collector):
        repo = init_repo(tmp_path / "empty", commit=False)

        local = collector.collect_local(repo)

        assert local.branch == "main"
        assert local.uncommitted_count == 0

    def test_scope_local_only(self, temp_git_repo, collector):
        collected = collector.collect(temp_git_repo, LOCAL_ONLY)

        assert collected.local is not None
        assert collected.remote is None


# ============================================================================
# REMOTE STATUS (Requires git)
# ============================================================================

@requires_git
class TestRemoteStatus:

    def test_no_remote(self, temp_git_repo, collector):
        assert collector.collect_remote(temp_git_repo) == RemoteStatus()

    def test_remote_without_upstream(self, temp_git_repo, collector, tmp_path):
        git(temp_git_repo, "remote", "add", "origin", str(tmp_path / "nowhere.git"))

        remote = collector.collect_remote(temp_git_repo)

        assert remote.has_remote
        assert not remote.has_upstream

    def test_in_sync(self, tracked_repo, collector):
        remote = collector.collect_remote(tracked_repo)

        assert remote == RemoteStatus(has_remote=True, has_upstream=True, ahead=0, behind=0)

    def test_ahead(self, tracked_repo, collector):
        (tracked_repo / "a.txt").write_text("a")
        git(tracked_repo, "add", ".")
        git(tracked_repo, "commit", "-q", "-m", "ahead")

        remote = collector.collect(tracked_repo, REMOTE_ONLY).remote

        assert remote.ahead == 1
        assert remote.behind == 0

    def test_behind(self, tracked_repo, collector):
        (tracked_repo / "b.txt").write_text("b")
        git(tracked_repo, "add", ".")
        git(tracked_repo, "commit", "-q", "-m", "pushed")
        git(tracked_repo, "push", "-q")
        git(tracked_repo, "reset", "-q", "--hard", "HEAD~1")

        remote = collector.collect_remote(tracked_repo)

        assert remote.ahead == 0
        assert remote.behind == 1


# ============================================================================
# FAILURES
# ============================================================================

class TestFailures:

    @requires_git
    def test_not_a_repository(self, tmp_path, collector):
        plain = tmp_path / "plain"
        plain.mkdir()

        with pytest.raises(CollectionFailed):
            collector.collect(plain, ALL_SCOPES)

    def test_missing_directory(self, tmp_path, collector):
        with pytest.raises(CollectionFailed):
            collector.collect(tmp_path / "gone", ALL_SCOPES)

    def test_missing_git_binary(self, tmp_path):
        collector = GitStatusCollector(git_binary="gitpulse-no-such-git-binary")

        with pytest.raises(CollectionFailed) as exc:
            collector.collect(tmp_path, ALL_SCOPES)
        assert "cannot run git" in exc.value.reason


def scripted_git(monkeypatch, rev_list):
    """
    Replace subprocess.run for a repo tracking origin/main.

    rev_list maps the revision range to (returncode, stdout, stderr).
    """
    def run(cmd, **kwargs):
        args = cmd[1:]
        if args == ["remote"]:
            return subprocess.CompletedProcess(cmd, 0, "origin\n", "")
        if args[:2] == ["rev-parse", "--abbrev-ref"]:
            return subprocess.CompletedProcess(cmd, 0, "origin/main\n", "")
        if args[0] == "rev-list":
            return subprocess.CompletedProcess(cmd, *rev_list[args[-1]])
        raise AssertionError(f"unexpected git call: {args}")

    monkeypatch.setattr("gitpulse.services.git.subprocess.run", run)


class TestAheadBehindCounts:
    """rev-list failures are collection failures, never 'in sync'."""

    def test_counts(self, tmp_path, monkeypatch):
        scripted_git(monkeypatch, {
            "@{upstream}..HEAD": (0, "2\n", ""),
            "HEAD..@{upstream}": (0, "1\n", ""),
        })

        remote = GitStatusCollector().collect(tmp_path, REMOTE_ONLY).remote

        assert remote == RemoteStatus(has_remote=True, has_upstream=True, ahead=2, behind=1)

    def test_rev_list_exit_raises(self, tmp_path, monkeypatch):
        scripted_git(monkeypatch, {
            "@{upstream}..HEAD": (128, "", "fatal: bad revision '@{upstream}..HEAD'\n"),
            "HEAD..@{upstream}": (0, "0\n", ""),
        })

        with pytest.raises(CollectionFailed) as exc:
            GitStatusCollector().collect(tmp_path, REMOTE_ONLY)
        assert exc.value.reason.startswith("fatal: bad revision")

    def test_unparseable_count_raises(self, tmp_path, monkeypatch):
        scripted_git(monkeypatch, {
            "@{upstream}..HEAD": (0, "0\n", ""),
            "HEAD..@{upstream}": (0, "warning: something\n", ""),
        })

        with pytest.raises(CollectionFailed) as exc:
            GitStatusCollector().collect(tmp_path, REMOTE_ONLY)
        assert "rev-list" in exc.value.reason


# ============================================================================
# WORKTREE PARSING
# ============================================================================

class TestParseWorktrees:

    def test_main_and_linked(self):
        raw = (
            "worktree /src/app\n"
            "HEAD 1111111111111111111111111111111111111111\n"
            "branch refs/heads/main\n"
            "\n"
            "worktree /src/app-feature\n"
            "HEAD 2222222222222222222222222222222222222222\n"
            "branch refs/heads/feature/x\n"
            "\n"
            "worktree /src/app-detached\n"
            "HEAD 3333333333333333333333333333333333333333\n"
            "detached\n"
        )

        assert parse_worktrees(raw) == [
            Worktree(path="/src/app", branch="main"),
            Worktree(path="/src/app-feature", branch="feature/x"),
            Worktree(path="/src/app-detached", detached=True),
        ]

    def test_bare(self):
        raw = "worktree /src/app.git\nbare\n"
        assert parse_worktrees(raw) == [Worktree(path="/src/app.git", bare=True)]

    def test_empty(self):
        assert parse_worktrees("") == []
