"""
ScanMetrics -- Observability for scan orchestration

Collects and exposes:
- Triggers received, by cause, and how many were coalesced
- Scan cycles run and their latency
- Repositories collected, by scope, and collection failures
- Per-repository collection latency

Thread-safe. Every operation takes the metrics lock.
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Any, Tuple
from datetime import datetime, timezone

from .task import ScanTrigger, ScanReport, CollectionResult


# Upper bounds in ms for one git status collection or one cycle
LATENCY_BUCKETS: Tuple[Tuple[str, float], ...] = (
    ("lt_50ms", 50),
    ("lt_250ms", 250),
    ("lt_1s", 1000),
    ("lt_5s", 5000),
)
OVERFLOW_BUCKET = "gt_5s"


@dataclass
class LatencyHistogram:
    """Latency histogram for repository collections and whole cycles."""
    count: int = 0
    sum_ms: float = 0.0
    min_ms: float = float('inf')
    max_ms: float = 0.0
    buckets: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(
        [name for name, _ in LATENCY_BUCKETS] + [OVERFLOW_BUCKET], 0
    ))

    def record(self, duration_ms: float) -> None:
        self.count += 1
        self.sum_ms += duration_ms
        self.min_ms = min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

        for name, bound in LATENCY_BUCKETS:
            if duration_ms < bound:
                self.buckets[name] += 1
                return
        self.buckets[OVERFLOW_BUCKET] += 1

    @property
    def avg_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.sum_ms / self.count

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "avg_ms": round(self.avg_ms, 2),
            "min_ms": round(self.min_ms, 2) if self.min_ms != float('inf') else 0,
            "max_ms": round(self.max_ms, 2),
            "buckets": self.buckets.copy()
        }


@dataclass
class CounterMetric:
    """Simple counter metric."""
    value: int = 0

    def inc(self, amount: int = 1) -> None:
        self.value += amount


class ScanMetrics:
    """
    Counters and histograms for the scan engine.

    Metrics exposed:
    - triggers: Counter by cause, plus "coalesced"
    - cycles: Counter by cause of the admitted trigger
    - collected: Counter by scope and status
    - latency: Histogram for cycles and for single repositories
    """

    def __init__(self):
        self._lock = threading.Lock()

        self._triggers: Dict[str, CounterMetric] = defaultdict(CounterMetric)
        self._cycles: Dict[str, CounterMetric] = defaultdict(CounterMetric)
        self._collected: Dict[str, CounterMetric] = defaultdict(CounterMetric)

        self._latency: Dict[str, LatencyHistogram] = defaultdict(LatencyHistogram)

        self._start_time = datetime.now(timezone.utc)

    def record_trigger(self, trigger: ScanTrigger, admitted: bool) -> None:
        """Record a trigger and whether it was admitted or coalesced."""
        with self._lock:
            self._triggers[trigger.cause.value].inc()
            self._triggers["total"].inc()
            if not admitted:
                self._triggers["coalesced"].inc()

    def record_collection(self, result: CollectionResult) -> None:
        """Record one repository collection."""
        with self._lock:
            scope_key = "+".join(sorted(s.value for s in result.scope))
            self._collected[f"{scope_key}:{result.status.value}"].inc()
            self._collected[f"total:{result.status.value}"].inc()

            if result.duration_ms is not None:
                self._latency["repo"].record(result.duration_ms)

    def record_cycle(self, report: ScanReport) -> None:
        """Record a completed scan cycle."""
        with self._lock:
            self._cycles[report.trigger.cause.value].inc()
            self._cycles["total"].inc()
            self._collected["vanished"].inc(len(report.vanished))

            if report.duration_ms is not None:
                self._latency["cycle"].record(report.duration_ms)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()

            return {
                "uptime_seconds": round(uptime, 2),
                "triggers": {k: c.value for k, c in self._triggers.items()},
                "cycles": {k: c.value for k, c in self._cycles.items()},
                "collected": {k: c.value for k, c in self._collected.items()},
                "latency": {k: h.to_dict() for k, h in self._latency.items()},
            }

    def cycles_run(self) -> int:
        with self._lock:
            return self._cycles.get("total", CounterMetric()).value

    def reset(self) -> None:
        """Reset all metrics."""
        with self._lock:
            self._triggers.clear()
            self._cycles.clear()
            self._collected.clear()
            self._latency.clear()
            self._start_time = datetime.now(timezone.utc)
