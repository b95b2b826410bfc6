"""
Tests for the Cache Store

Tests verify:
- reconcile() follows the discoverer exactly (adds, removals)
- Local and remote halves are replaced independently
- Successful commits store signals and reset the TTL deadline
- Failures keep the previous snapshot, record the error and force the failed scope stale
- Invalidations mark existing entries only
"""

from pathlib import Path

from gitpulse.core.cache import CacheStore, RepoView, EXPIRED
from gitpulse.core.signals import FreshnessSignals
from gitpulse.core.snapshot import LocalStatus, RemoteStatus
from gitpulse.core.invalidation import LOCAL_ONLY, REMOTE_ONLY, ALL_SCOPES


A = Path("/src/a")
B = Path("/src/b")
C = Path("/src/c")

SIGNALS = FreshnessSignals(index=1, head=2, upstream=3, fetch_marker=4)
LOCAL = LocalStatus(branch="main", uncommitted_count=2)
REMOTE = RemoteStatus(has_remote=True, has_upstream=True, ahead=1)


def seeded(path=A) -> CacheStore:
    store = CacheStore()
    store.reconcile([path])
    store.commit_success(path, SIGNALS, completed_at=10.0, remote_ttl=5.0, local=LOCAL, remote=REMOTE)
    return store


# =============================================================================
# Reconcile
# =============================================================================

class TestReconcile:
    """Tracked set follows the discoverer."""

    def test_initial(self):
        store = CacheStore()
        added, removed = store.reconcile([A, B])

        assert added == [A, B]
        assert removed == []
        assert store.tracked() == [A, B]

    def test_removal_drops_entry(self):
        store = seeded(A)
        store.reconcile([A, B])

        added, removed = store.reconcile([B])

        assert removed == [A]
        assert store.get(A) is None
        assert A not in store.snapshot()

    def test_duplicates_ignored(self):
        store = CacheStore()
        added, _ = store.reconcile([A, A, B])

        assert added == [A, B]
        assert store.tracked() == [A, B]

    def test_unchanged_set(self):
        store = seeded(A)
        added, removed = store.reconcile([A])

        assert added == [] and removed == []
        assert store.get(A) is not None

    def test_tracked_without_entry_is_visible(self):
        store = CacheStore()
        store.reconcile([A])

        view = store.view(A)
        assert view == RepoView(path=A, snapshot=None)
        assert len(store) == 0


# =============================================================================
# Commits
# =============================================================================

class TestCommitSuccess:
    """Storing collected fields."""

    def test_new_entry(self):
        store = seeded()
        entry = store.get(A)

        assert entry.snapshot.local == LOCAL
        assert entry.snapshot.remote == REMOTE
        assert entry.signals == SIGNALS
        assert entry.remote_ttl_deadline == 15.0
        assert entry.local_checked_at == 10.0
        assert entry.remote_checked_at == 10.0

    def test_remote_only_keeps_local(self):
        store = seeded()
        new_remote = RemoteStatus(has_remote=True, has_upstream=True, ahead=0, behind=3)

        store.commit_success(A, SIGNALS, completed_at=20.0, remote_ttl=5.0, remote=new_remote)
        entry = store.get(A)

        assert entry.snapshot.local == LOCAL
        assert entry.snapshot.remote == new_remote
        assert entry.remote_ttl_deadline == 25.0
        assert entry.local_checked_at == 10.0

    def test_local_only_keeps_remote_and_deadline(self):
        store = seeded()
        new_local = LocalStatus(branch="dev")

        store.commit_success(A, SIGNALS, completed_at=20.0, remote_ttl=5.0, local=new_local)
        entry = store.get(A)

        assert entry.snapshot.local == new_local
        assert entry.snapshot.remote == REMOTE
        assert entry.remote_ttl_deadline == 15.0

    def test_local_commit_clears_forced(self):
        store = seeded()
        store.apply_invalidation(A, LOCAL_ONLY)
        assert store.get(A).local_forced

        store.commit_success(A, SIGNALS, completed_at=20.0, remote_ttl=5.0, local=LOCAL, remote=REMOTE)

        assert not store.get(A).local_forced

    def test_success_clears_error(self):
        store = seeded()
        store.commit_failure(A, "boom")

        store.commit_success(A, SIGNALS, completed_at=20.0, remote_ttl=5.0, local=LOCAL, remote=REMOTE)

        assert store.get(A).last_error is None


class TestCommitFailure:
    """Failures never discard the last good snapshot."""

    def test_keeps_snapshot_and_deadline(self):
        store = seeded()
        before = store.get(A)

        store.commit_failure(A, "git status timed out")
        after = store.get(A)

        assert after.snapshot == before.snapshot
        assert after.signals == before.signals
        assert after.remote_ttl_deadline == before.remote_ttl_deadline
        assert after.last_error == "git status timed out"

    def test_failed_scope_forced_stale(self):
        store = seeded()
        before = store.get(A)

        after = store.commit_failure(A, "permission denied", scope=ALL_SCOPES)

        assert after.snapshot == before.snapshot
        assert after.signals == before.signals
        assert after.local_forced
        assert after.remote_ttl_deadline == EXPIRED

    def test_remote_failure_leaves_local_flag(self):
        store = seeded()

        after = store.commit_failure(A, "rev-list failed", scope=REMOTE_ONLY)

        assert after.remote_ttl_deadline == EXPIRED
        assert not after.local_forced

    def test_first_failure_has_no_entry(self):
        store = CacheStore()
        store.reconcile([A])

        assert store.commit_failure(A, "not a repository") is None
        assert store.get(A) is None

        view = store.view(A)
        assert view.snapshot is None
        assert view.last_error == "not a repository"
        assert view.has_error

    def test_first_error_dropped_when_repo_vanishes(self):
        store = CacheStore()
        store.reconcile([A])
        store.commit_failure(A, "boom")

        store.reconcile([])
        store.reconcile([A])

        assert store.view(A).last_error is None


# =============================================================================
# Invalidation
# =============================================================================

class TestApplyInvalidation:

    def test_remote_expires_deadline(self):
        store = seeded()
        assert store.apply_invalidation(A, REMOTE_ONLY)

        entry = store.get(A)
        assert entry.remote_ttl_deadline == EXPIRED
        assert not entry.local_forced

    def test_local_sets_forced(self):
        store = seeded()
        store.apply_invalidation(A, LOCAL_ONLY)

        entry = store.get(A)
        assert entry.local_forced
        assert entry.remote_ttl_deadline == 15.0

    def test_both(self):
        store = seeded()
        store.apply_invalidation(A, ALL_SCOPES)

        entry = store.get(A)
        assert entry.local_forced
        assert entry.remote_ttl_deadline == EXPIRED

    def test_no_entry(self):
        store = CacheStore()
        store.reconcile([A])
        assert store.apply_invalidation(A, ALL_SCOPES) is False


# =============================================================================
# Reads
# =============================================================================

class TestReads:

    def test_snapshot_in_tracked_order(self):
        store = CacheStore()
        store.reconcile([C, A, B])

        assert list(store.snapshot().keys()) == [C, A, B]

    def test_view_untracked(self):
        assert CacheStore().view(A) is None

    def test_view_to_dict(self):
        store = seeded()
        data = store.view(A).to_dict()

        assert data["name"] == "a"
        assert data["snapshot"]["local"]["uncommitted_count"] == 2
        assert data["snapshot"]["remote"]["ahead"] == 1
        assert data["error"] is None
