"""
Scan Orchestrator -- Status cache refresh engine for gitpulse

Owns the status cache and decides, per trigger, which repositories need
which fields collected again.

Cycle (per admitted trigger):
    IDLE -> QUEUED -> ADMITTED -> SCANNING -> COMMITTING -> IDLE
                                                        \\-> QUEUED (follow-up)

Single-writer pattern:
- Triggers (timer, manual refresh, action completion) are producers only
- Every admitted cycle runs on ONE owner thread, the only cache writer
- Collection fans out to a worker pool; workers never touch the cache
- The cache is not locked while git runs

Usage:
    from gitpulse.orchestrator import ScanOrchestrator

    orchestrator = ScanOrchestrator(discoverer=RepoDiscoverer([Path("~/src")]))
    orchestrator.start()                       # startup scan + periodic timer

    orchestrator.manual_refresh()              # keyboard refresh
    orchestrator.notify_action_completed(path, "push")

    views = orchestrator.snapshot()            # read-only, any thread
    orchestrator.shutdown()

Configuration via environment variables:
    GITPULSE_PARALLEL_ENABLED=true    # Parallel collection
    GITPULSE_COLLECTOR_WORKERS=8      # Thread pool size for git
    GITPULSE_COLLECTOR_TIMEOUT=5      # Per git command timeout (seconds)
"""

import logging
import threading
import time
from pathlib import Path
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional, Union, Any

from .task import (
    ScanTrigger, TriggerCause, CycleState, CollectionTask, CollectionResult,
    CollectionStatus, ScanReport, startup_trigger, periodic_trigger,
    manual_trigger, follow_up_trigger, action_trigger,
)
from .config import OrchestratorConfig
from .coalescer import ScanCoalescer, RunNow, Queued, Admission
from .pools import CollectorPool
from .metrics import ScanMetrics
from ..config import Config, DEFAULT_REFRESH_INTERVAL, DEFAULT_REMOTE_TTL, get_config
from ..core.cache import CacheStore, RepoEntry, RepoView, mark_stale
from ..core.signals import FreshnessSignals, SignalUnavailable, read_signals
from ..core.validity import Validity, Partition, evaluate
from ..core.invalidation import (
    ActionKind, SignalScope, PendingActionInvalidation, InvalidationInbox,
    parse_action_kind,
)
from ..services.collector import StatusCollector
from ..services.discovery import RepoDiscoverer
from ..services.git import GitStatusCollector


logger = logging.getLogger(__name__)

Discoverer = Callable[[], Iterable[Path]]


class ScanOrchestrator:
    """
    Coordinates triggers, validity checks, collection and cache commits.

    Thread Safety:
    - All public methods are thread-safe
    - Cache writes happen only on the owner thread
    """

    def __init__(
        self,
        discoverer: Discoverer,
        collector: Optional[StatusCollector] = None,
        config: Optional[OrchestratorConfig] = None,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
        remote_ttl: float = DEFAULT_REMOTE_TTL,
        clock: Callable[[], float] = time.monotonic,
        signal_reader: Callable[[Path], FreshnessSignals] = read_signals,
    ):
        """
        Initialize the orchestrator.

        Args:
            discoverer: Returns the authoritative list of repository paths
            collector: Status collector. If None, uses git with the configured timeout.
            config: Engine configuration. If None, loads from environment.
            refresh_interval: Seconds between periodic scans
            remote_ttl: Seconds ahead/behind stay valid without a local change
            clock: Monotonic time source for TTL deadlines
            signal_reader: Reads freshness signals for one repository
        """
        self._config = config or OrchestratorConfig.from_env()
        self._config.validate()

        self._discoverer = discoverer
        self._collector = collector or GitStatusCollector(timeout=self._config.collector_timeout)
        self._refresh_interval = refresh_interval
        self._remote_ttl = remote_ttl
        self._clock = clock
        self._read_signals = signal_reader

        self._store = CacheStore()
        self._coalescer = ScanCoalescer()
        self._inbox = InvalidationInbox()
        self._metrics = ScanMetrics()

        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._state = CycleState.IDLE
        self._last_report: Optional[ScanReport] = None

        # Lazily created on first use
        self._owner: Optional[ThreadPoolExecutor] = None
        self._pool: Optional[CollectorPool] = None

        self._stop = threading.Event()
        self._ticker: Optional[threading.Thread] = None

    @classmethod
    def from_config(
        cls,
        app_config: Config,
        config: Optional[OrchestratorConfig] = None,
        collector: Optional[StatusCollector] = None,
    ) -> 'ScanOrchestrator':
        """Build an orchestrator with the default discoverer for app_config."""
        discoverer = RepoDiscoverer(
            app_config.scan.watch_directories,
            max_depth=app_config.scan.max_scan_depth,
            ignored_repos=app_config.scan.ignored_repos,
        )
        return cls(
            discoverer=discoverer,
            collector=collector,
            config=config,
            refresh_interval=app_config.scan.refresh_interval,
            remote_ttl=app_config.scan.remote_ttl,
        )

    def _ensure_started(self) -> None:
        """Lazily initialize the owner thread and collector pool."""
        if self._started:
            return

        with self._lock:
            if self._started:
                return

            self._owner = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gitpulse-owner-")
            self._pool = CollectorPool(self._collector, self._config, clock=self._clock)
            self._started = True

    # =========================================================================
    # Trigger entry points (producers, any thread)
    # =========================================================================

    def request_scan(self, trigger: ScanTrigger) -> Optional[Future]:
        """
        Ask for a scan.

        Returns:
            Future resolving to the last ScanReport of the admitted run,
            or None if the trigger was merged into a pending follow-up.

        Raises:
            RuntimeError: If the orchestrator is shut down
        """
        if self._shutdown:
            raise RuntimeError("Orchestrator is shut down")
        self._ensure_started()

        admission = self._coalescer.admit(trigger)
        self._metrics.record_trigger(trigger, admitted=isinstance(admission, RunNow))

        if isinstance(admission, Queued):
            logger.debug("Trigger %s (%s) coalesced into follow-up", trigger.id, trigger.cause.value)
            return None

        self._set_state(CycleState.QUEUED)
        try:
            return self._owner.submit(self._drive, admission)
        except RuntimeError:
            # Owner shut down between the check and the submit
            self._coalescer.abandon()
            raise

    def manual_refresh(self) -> Optional[Future]:
        """User-requested refresh of every tracked repository."""
        return self.request_scan(manual_trigger())

    def notify_action_completed(
        self,
        repo_path: Union[Path, str],
        action_kind: Union[ActionKind, str]
    ) -> Optional[Future]:
        """
        A mutating action finished on a repository.

        Queues the selective invalidation for the owner, then requests
        a scan restricted to that repository.
        """
        kind = parse_action_kind(action_kind)
        path = _canonical(repo_path)

        scopes = self._inbox.post(PendingActionInvalidation(repo_path=path, action_kind=kind))
        logger.debug(
            "Action %s completed on %s, invalidating %s",
            kind.value, path, sorted(s.value for s in scopes)
        )

        return self.request_scan(action_trigger(path, kind))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> Optional[Future]:
        """Run the startup scan and start the periodic timer."""
        future = self.request_scan(startup_trigger())

        with self._lock:
            if self._ticker is None:
                self._stop.clear()
                self._ticker = threading.Thread(
                    target=self._tick_loop,
                    name="gitpulse-ticker",
                    daemon=True
                )
                self._ticker.start()

        return future

    def run_once(self, timeout: Optional[float] = None) -> Optional[ScanReport]:
        """
        Run a full scan and wait for it.

        If a scan is already running, waits for it and its follow-up.
        """
        future = self.request_scan(manual_trigger())
        if future is not None:
            return future.result(timeout=timeout)

        self._coalescer.wait_idle(timeout=timeout)
        return self.last_report

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no scan is running or queued. False on timeout."""
        return self._coalescer.wait_idle(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop the timer and release worker threads.

        Args:
            wait: If True, let a running scan (and its follow-up) finish
        """
        with self._lock:
            if self._shutdown:
                return
            self._shutdown = True
            ticker = self._ticker
            self._ticker = None

        self._stop.set()
        if ticker is not None:
            ticker.join(timeout=self._config.shutdown_timeout)

        if wait:
            self._coalescer.wait_idle(timeout=self._config.shutdown_timeout)

        if self._owner is not None:
            self._owner.shutdown(wait=wait)
        if self._pool is not None:
            self._pool.shutdown(wait=wait)

    def _tick_loop(self) -> None:
        """Timer thread: one periodic trigger per interval."""
        while not self._stop.wait(self._refresh_interval):
            try:
                self.request_scan(periodic_trigger())
            except RuntimeError:
                break

    # =========================================================================
    # Reads (any thread)
    # =========================================================================

    def snapshot(self) -> Dict[Path, RepoView]:
        """Read-only views of every tracked repository."""
        return self._store.snapshot()

    def view(self, repo_path: Union[Path, str]) -> Optional[RepoView]:
        return self._store.view(_canonical(repo_path))

    def entry(self, repo_path: Union[Path, str]) -> Optional[RepoEntry]:
        """Raw cache entry (immutable)."""
        return self._store.get(_canonical(repo_path))

    def classify(self, repo_path: Union[Path, str]) -> Validity:
        """
        Evaluate one repository against its current signals.

        Pure read. Invalidations still waiting in the inbox are applied
        to a copy of the entry first, so a completed action is visible
        before the owner drains it.
        """
        path = _canonical(repo_path)
        entry = self._store.get(path)
        if entry is not None:
            entry = mark_stale(entry, self._inbox.peek(path))
        return evaluate(entry, self._safe_read_signals(path), self._clock())

    @property
    def state(self) -> CycleState:
        with self._lock:
            return self._state

    @property
    def last_report(self) -> Optional[ScanReport]:
        with self._lock:
            return self._last_report

    @property
    def is_scanning(self) -> bool:
        return self._coalescer.scan_in_flight

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def remote_ttl(self) -> float:
        return self._remote_ttl

    def now(self) -> float:
        """Current time on the orchestrator clock."""
        return self._clock()

    def pending_invalidations(self) -> int:
        return self._inbox.pending_count()

    def get_metrics(self) -> Dict[str, Any]:
        """Get orchestrator metrics summary."""
        summary = self._metrics.get_summary()
        summary["config"] = self._config.to_dict()
        summary["coalescer"] = self._coalescer.stats().to_dict()
        summary["tracked"] = len(self._store.tracked())
        if self._pool is not None:
            summary["collector_pool"] = self._pool.stats().to_dict()
        return summary

    # =========================================================================
    # Owner thread
    # =========================================================================

    def _drive(self, admission: RunNow) -> Optional[ScanReport]:
        """Run the admitted cycle, then any follow-up the coalescer hands back."""
        report: Optional[ScanReport] = None
        current: Optional[RunNow] = admission

        while current is not None:
            try:
                report = self._run_cycle(current.trigger)
            except Exception:
                # A broken cycle must not wedge the gate or kill the owner
                logger.exception("Scan cycle for %s trigger failed", current.trigger.cause.value)
            finally:
                self._set_state(CycleState.IDLE)

            current = self._coalescer.complete()
            if current is not None:
                self._set_state(CycleState.QUEUED)

        return report

    def _run_cycle(self, trigger: ScanTrigger) -> ScanReport:
        report = ScanReport(trigger=trigger, started_at=self._clock())

        # ADMITTED: reconcile, apply invalidations, partition
        self._set_state(CycleState.ADMITTED)

        if not trigger.is_restricted:
            self._reconcile(report)
        self._apply_invalidations(report)

        tracked = self._store.tracked()
        report.tracked = len(tracked)
        targets = self._targets(trigger, tracked)

        tasks, partition = self._plan(targets)
        report.fresh = partition.fresh

        logger.debug(
            "Cycle %s: %d target(s), plan %s",
            trigger.cause.value, len(targets), partition.to_dict()
        )

        # SCANNING: no cache lock held while collectors run
        self._set_state(CycleState.SCANNING)
        results = self._pool.run_batch(tasks) if tasks else []

        # COMMITTING
        self._set_state(CycleState.COMMITTING)
        for result in results:
            self._commit(result)
            self._metrics.record_collection(result)

        report.collected = results
        report.completed_at = self._clock()
        self._metrics.record_cycle(report)

        with self._lock:
            self._last_report = report

        logger.info(
            "Scan (%s): %d tracked, %d fresh, %d collected, %d failed, %d vanished",
            trigger.cause.value, report.tracked, len(report.fresh),
            len(results), len(report.failures), len(report.vanished)
        )
        return report

    def _reconcile(self, report: ScanReport) -> None:
        """Sync the tracked set with the discoverer."""
        try:
            paths = [_canonical(p) for p in self._discoverer()]
        except Exception:
            logger.warning("Discovery failed; keeping %d tracked repos", len(self._store.tracked()),
                           exc_info=True)
            return

        added, removed = self._store.reconcile(paths)
        report.added = added
        report.vanished = removed

        for path in removed:
            logger.info("Repository vanished: %s", path)

    def _apply_invalidations(self, report: ScanReport) -> None:
        for path, scopes in self._inbox.drain().items():
            if self._store.apply_invalidation(path, scopes):
                report.invalidated.append(path)

    def _targets(self, trigger: ScanTrigger, tracked: List[Path]) -> List[Path]:
        if not trigger.is_restricted:
            return tracked

        targets = [p for p in tracked if p in trigger.targets]
        for path in trigger.targets:
            if path not in targets:
                logger.debug("Ignoring untracked target %s", path)
        return targets

    def _plan(self, targets: List[Path]):
        """Evaluate each target. Returns (tasks, partition)."""
        tasks: List[CollectionTask] = []
        partition = Partition()
        now = self._clock()

        for path in targets:
            signals = self._safe_read_signals(path)
            validity = evaluate(self._store.get(path), signals, now)
            partition.add(path, validity)

            if validity.needs_scan:
                tasks.append(CollectionTask(
                    repo_path=path,
                    scope=validity.required_scope,
                    signals=signals,
                ))

        return tasks, partition

    def _safe_read_signals(self, path: Path) -> Optional[FreshnessSignals]:
        """Signals, or None when unavailable (forces a rescan)."""
        try:
            return self._read_signals(path)
        except SignalUnavailable as e:
            logger.debug("Signals unavailable for %s: %s", path, e.reason)
            return None

    def _commit(self, result: CollectionResult) -> None:
        if result.failed:
            logger.warning("Collection failed for %s: %s", result.repo_path, result.error)
            self._store.commit_failure(
                result.repo_path,
                result.error or "collection failed",
                scope=result.scope,
            )
            return

        self._store.commit_success(
            result.repo_path,
            signals=result.signals,
            completed_at=result.completed_at,
            remote_ttl=self._remote_ttl,
            local=result.local if SignalScope.LOCAL in result.scope else None,
            remote=result.remote if SignalScope.REMOTE in result.scope else None,
        )

    def _set_state(self, state: CycleState) -> None:
        with self._lock:
            self._state = state


def _canonical(path: Union[Path, str]) -> Path:
    return Path(path).expanduser().resolve()


# Global orchestrator instance (singleton pattern)
_orchestrator: Optional[ScanOrchestrator] = None
_orchestrator_lock = threading.Lock()


def get_orchestrator() -> ScanOrchestrator:
    """
    Get the global orchestrator instance.

    Creates one if it doesn't exist, using the loaded configuration.
    """
    global _orchestrator

    if _orchestrator is None:
        with _orchestrator_lock:
            if _orchestrator is None:
                _orchestrator = ScanOrchestrator.from_config(get_config())

    return _orchestrator


def reset_orchestrator() -> None:
    """
    Reset the global orchestrator.

    Useful for testing or reconfiguration.
    """
    global _orchestrator

    with _orchestrator_lock:
        if _orchestrator is not None:
            _orchestrator.shutdown(wait=True)
            _orchestrator = None


# Public API exports
__all__ = [
    # Main class
    "ScanOrchestrator",

    # Triggers and results
    "ScanTrigger",
    "TriggerCause",
    "CycleState",
    "CollectionTask",
    "CollectionResult",
    "CollectionStatus",
    "ScanReport",

    # Factory functions
    "startup_trigger",
    "periodic_trigger",
    "manual_trigger",
    "follow_up_trigger",
    "action_trigger",

    # Configuration
    "OrchestratorConfig",

    # Components (for advanced usage)
    "ScanCoalescer",
    "RunNow",
    "Queued",
    "Admission",
    "CollectorPool",
    "ScanMetrics",

    # Global instance
    "get_orchestrator",
    "reset_orchestrator",
]
