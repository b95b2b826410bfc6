"""
CollectorPool -- Parallel status collection

ThreadPoolExecutor for collector calls. Git status is subprocess-bound,
so threads are enough: the GIL is released while waiting on git.

Design principles:
- One task per repository, independent of the others
- A failing repository yields a FAILED result, never an exception,
  so one bad repo cannot abort the batch
- Workers never touch the cache; results go back to the owner
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, Future
from typing import Callable, List, Optional
from dataclasses import dataclass

from .task import CollectionTask, CollectionResult, CollectionStatus
from .config import OrchestratorConfig
from ..services.collector import StatusCollector, CollectionFailed


logger = logging.getLogger(__name__)


@dataclass
class PoolStats:
    """Statistics for pool observability."""
    active_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    total_duration_ms: float = 0.0

    @property
    def avg_duration_ms(self) -> float:
        if self.completed_tasks == 0:
            return 0.0
        return self.total_duration_ms / self.completed_tasks

    def to_dict(self) -> dict:
        return {
            "active_tasks": self.active_tasks,
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "avg_duration_ms": round(self.avg_duration_ms, 2)
        }


class CollectorPool:
    """
    Runs collection tasks, in parallel when enabled.

    With config.enabled=False tasks run one by one on the calling
    thread; results are identical.
    """

    def __init__(
        self,
        collector: StatusCollector,
        config: OrchestratorConfig,
        clock: Callable[[], float] = time.monotonic
    ):
        self._collector = collector
        self._config = config
        self._clock = clock
        self._executor: Optional[ThreadPoolExecutor] = None
        if config.enabled:
            self._executor = ThreadPoolExecutor(
                max_workers=config.collector_workers,
                thread_name_prefix="gitpulse-collect-"
            )
        self._stats = PoolStats()
        self._lock = threading.Lock()
        self._shutdown = False

    def submit(self, task: CollectionTask) -> Future:
        """
        Submit one repository for collection.

        Returns a Future resolving to a CollectionResult.
        """
        if self._shutdown:
            raise RuntimeError("Pool is shut down")

        with self._lock:
            self._stats.active_tasks += 1

        if self._executor is None:
            future: Future = Future()
            future.set_result(self._execute_task(task))
        else:
            future = self._executor.submit(self._execute_task, task)

        future.add_done_callback(lambda f: self._on_complete(f))
        return future

    def run_batch(self, tasks: List[CollectionTask]) -> List[CollectionResult]:
        """
        Collect every task and wait for all of them.

        Returns results in the same order as tasks.
        """
        futures = [self.submit(task) for task in tasks]
        return [f.result() for f in futures]

    def _execute_task(self, task: CollectionTask) -> CollectionResult:
        """Run the collector, converting every failure into a result."""
        started_at = self._clock()

        try:
            collected = self._collector.collect(task.repo_path, task.scope)
            if not collected.covers(task.scope):
                raise CollectionFailed(task.repo_path, "collector returned incomplete status")

            return CollectionResult(
                repo_path=task.repo_path,
                scope=task.scope,
                status=CollectionStatus.COMPLETED,
                local=collected.local,
                remote=collected.remote,
                signals=task.signals,
                started_at=started_at,
                completed_at=self._clock(),
            )

        except CollectionFailed as e:
            error = e.reason
        except Exception as e:
            logger.exception("Collector crashed on %s", task.repo_path)
            error = f"{type(e).__name__}: {e}"

        return CollectionResult(
            repo_path=task.repo_path,
            scope=task.scope,
            status=CollectionStatus.FAILED,
            signals=task.signals,
            error=error,
            started_at=started_at,
            completed_at=self._clock(),
        )

    def _on_complete(self, future: Future) -> None:
        """Callback when task completes."""
        with self._lock:
            self._stats.active_tasks -= 1

            try:
                result = future.result()
                if result.success:
                    self._stats.completed_tasks += 1
                    self._stats.total_duration_ms += result.duration_ms or 0
                else:
                    self._stats.failed_tasks += 1
            except Exception:
                self._stats.failed_tasks += 1

    def stats(self) -> PoolStats:
        """Get pool statistics."""
        with self._lock:
            return PoolStats(
                active_tasks=self._stats.active_tasks,
                completed_tasks=self._stats.completed_tasks,
                failed_tasks=self._stats.failed_tasks,
                total_duration_ms=self._stats.total_duration_ms
            )

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the pool."""
        self._shutdown = True
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
