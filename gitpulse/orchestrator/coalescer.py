"""
ScanCoalescer -- Admission gate for scan passes

State is two booleans, not a queue:
- scan_in_flight: a scan is executing
- queued_follow_up: at least one trigger arrived during it

Any number of triggers during a scan collapse into ONE follow-up.
A burst of N triggers therefore costs at most two scans, never N.
Triggers are fungible: the follow-up scans every tracked repo because
the merged triggers may have targeted different ones.
"""

import threading
from dataclasses import dataclass
from typing import Optional, Union, FrozenSet
from pathlib import Path

from .task import ScanTrigger, follow_up_trigger


@dataclass(frozen=True)
class RunNow:
    """Admitted: the caller must run this scan."""
    trigger: ScanTrigger

    @property
    def targets(self) -> Optional[FrozenSet[Path]]:
        return self.trigger.targets


@dataclass(frozen=True)
class Queued:
    """Merged into the pending follow-up. The caller does no work."""
    trigger: ScanTrigger


Admission = Union[RunNow, Queued]


@dataclass
class CoalescerStats:
    """Statistics for coalescer observability."""
    admitted: int = 0
    coalesced: int = 0
    follow_ups: int = 0

    def to_dict(self) -> dict:
        return {
            "admitted": self.admitted,
            "coalesced": self.coalesced,
            "follow_ups": self.follow_ups,
        }


class ScanCoalescer:
    """
    At most one scan in flight, at most one queued behind it.

    Thread-safe. admit() is called by trigger producers on any thread;
    complete() is called by whoever ran the admitted scan.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)

        self._scan_in_flight = False
        self._queued_follow_up = False

        self._stats = CoalescerStats()

    def admit(self, trigger: ScanTrigger) -> Admission:
        """
        Request a scan.

        Returns:
            RunNow if no scan is running (caller runs it),
            Queued otherwise (a follow-up is now pending)
        """
        with self._lock:
            if not self._scan_in_flight:
                self._scan_in_flight = True
                self._stats.admitted += 1
                return RunNow(trigger)

            self._queued_follow_up = True
            self._stats.coalesced += 1
            return Queued(trigger)

    def complete(self) -> Optional[RunNow]:
        """
        Signal that the admitted scan finished.

        Returns:
            RunNow for the full tracked set if triggers were merged
            during the scan (the scan stays in flight), else None.
        """
        with self._lock:
            if self._queued_follow_up:
                self._queued_follow_up = False
                self._stats.follow_ups += 1
                return RunNow(follow_up_trigger())

            self._scan_in_flight = False
            self._idle.notify_all()
            return None

    def abandon(self) -> None:
        """Release the gate after a scan died, dropping any follow-up."""
        with self._lock:
            self._scan_in_flight = False
            self._queued_follow_up = False
            self._idle.notify_all()

    @property
    def scan_in_flight(self) -> bool:
        with self._lock:
            return self._scan_in_flight

    @property
    def queued_follow_up(self) -> bool:
        with self._lock:
            return self._queued_follow_up

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no scan is in flight.

        Returns False on timeout.
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._scan_in_flight, timeout=timeout)

    def stats(self) -> CoalescerStats:
        with self._lock:
            return CoalescerStats(
                admitted=self._stats.admitted,
                coalesced=self._stats.coalesced,
                follow_ups=self._stats.follow_ups,
            )
