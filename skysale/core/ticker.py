"""
Ticker - periodic driver for the engine's time-based transitions.

Jobs sit in a min-heap keyed by their next run time. A tick runs every
due job to completion, in priority order, and reschedules it.

Two guards keep ticks from overlapping:
- an in-process non-blocking lock (one tick at a time per process)
- a named lease in the catalog store with a TTL (one instance at a time)

The lease is re-checked before each job; if it was lost the rest of the
tick is abandoned and the remaining jobs stay due.
"""

import heapq
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from skysale.core.clock import SystemClock
from skysale.core.config import EngineConfig
from skysale.core.errors import LeaseLostError
from skysale.core.models import TickReport
from skysale.core.storage import CatalogStore
from skysale.utils.logger import get_logger

logger = get_logger("ticker")


@dataclass(order=True)
class ScheduledJob:
    next_run: datetime
    priority: int
    name: str = field(compare=False)
    interval: timedelta = field(compare=False)
    func: Callable[[], object] = field(compare=False, repr=False)
    on_events: bool = field(default=True, compare=False)


class Ticker:
    """Runs due jobs under a reentrancy guard and a store-backed lease."""

    def __init__(
        self,
        store: CatalogStore,
        clock=None,
        config: Optional[EngineConfig] = None,
        holder_id: Optional[str] = None,
        next_event: Optional[Callable[[datetime], Optional[datetime]]] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config or EngineConfig()
        self.holder_id = holder_id or f"ticker-{uuid.uuid4().hex[:8]}"
        self.next_event = next_event

        self._jobs: List[ScheduledJob] = []
        self._running = threading.Lock()
        self._stop = threading.Event()

    @property
    def lease_ttl(self) -> timedelta:
        return timedelta(seconds=self.config.lease_ttl)

    def add_job(
        self,
        name: str,
        func: Callable[[], object],
        interval: timedelta,
        priority: int = 0,
        first_run: Optional[datetime] = None,
        on_events: bool = True,
    ):
        """
        Schedule `func` every `interval`; first run is due immediately by default.

        Jobs with `on_events=False` keep their own cadence and are never
        pulled forward by catalog events.
        """
        job = ScheduledJob(
            next_run=first_run or self.clock.now(),
            priority=priority,
            name=name,
            interval=interval,
            func=func,
            on_events=on_events,
        )
        heapq.heappush(self._jobs, job)

    @property
    def job_names(self) -> List[str]:
        return [j.name for j in sorted(self._jobs)]

    # =========================================================================
    # Tick
    # =========================================================================

    def run_once(self) -> TickReport:
        """Run every job that is due now."""
        now = self.clock.now()
        report = TickReport(started_at=now)

        if not self._running.acquire(blocking=False):
            logger.debug("Tick already running, skipping")
            report.skipped = True
            return report

        try:
            if not self.store.acquire_lease(self.config.lease_name, self.holder_id, now, self.lease_ttl):
                logger.debug(f"Lease '{self.config.lease_name}' held by another instance, skipping tick")
                report.skipped = True
                return report

            due = []
            while self._jobs and self._jobs[0].next_run <= now:
                due.append(heapq.heappop(self._jobs))

            for index, job in enumerate(due):
                try:
                    self._check_lease()
                except LeaseLostError as e:
                    logger.error(f"Aborting tick: {e}")
                    report.aborted = True
                    for pending in due[index:]:
                        heapq.heappush(self._jobs, pending)
                    break

                try:
                    job.func()
                    report.ran.append(job.name)
                except Exception as e:
                    logger.error(f"Job {job.name} failed: {e}")
                    report.failed[job.name] = str(e)

                job.next_run = now + job.interval
                heapq.heappush(self._jobs, job)
        finally:
            self._running.release()

        return report

    def _check_lease(self):
        if not self.store.holds_lease(self.config.lease_name, self.holder_id, self.clock.now()):
            raise LeaseLostError(f"Lease '{self.config.lease_name}' lost by {self.holder_id}")

    # =========================================================================
    # Loop
    # =========================================================================

    def next_wake(self, now: datetime) -> datetime:
        """Earliest of the next job run and the next real catalog event."""
        candidates = [self._jobs[0].next_run] if self._jobs else [now + timedelta(seconds=self.config.tick_interval)]
        if self.next_event is not None:
            event = self.next_event(now)
            if event is not None:
                candidates.append(event)
        return max(min(candidates), now)

    def pull_forward(self, when: datetime):
        """Make every event-driven job due no later than `when`."""
        for job in self._jobs:
            if job.on_events and job.next_run > when:
                job.next_run = when
        heapq.heapify(self._jobs)

    def run_forever(self, max_ticks: Optional[int] = None):
        """Tick until stop() is called, sleeping until the next wake-up."""
        logger.info(f"Ticker {self.holder_id} started with jobs {self.job_names}")
        ticks = 0
        try:
            while not self._stop.is_set():
                self.run_once()
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                now = self.clock.now()
                wake = self.next_wake(now)
                self.pull_forward(wake)
                delay = (wake - now).total_seconds()
                self._stop.wait(timeout=max(delay, 0.0))
        finally:
            self.store.release_lease(self.config.lease_name, self.holder_id)
            logger.info(f"Ticker {self.holder_id} stopped after {ticks} ticks")

    def stop(self):
        self._stop.set()
