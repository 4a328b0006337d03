"""
One-shot timers for irrigation session auto-completion.

Design:
- Single scheduler loop thread polls a heap of ``(run_at_ts, seq, job_id)``.
- Due jobs run on a bounded ThreadPoolExecutor once ``start()`` was called;
  before that (and in tests) ``process_due_jobs()`` runs them inline on the
  calling thread.
- Cancelling removes the job from the index only; its heap entry is skipped
  as stale when it surfaces.
- "Now" comes from an injectable clock so tests can advance time by hand.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from fieldflow.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass
class TimerJob:
    job_id: str
    run_at: datetime
    func: Callable[..., Any]
    name: str = ""
    args: tuple = ()
    kwargs: dict[str, Any] = field(default_factory=dict)


class TimerHandle:
    """Cancellation handle returned by :meth:`SessionTimerScheduler.schedule_once`."""

    def __init__(self, scheduler: "SessionTimerScheduler", job_id: str, run_at: datetime) -> None:
        self._scheduler = scheduler
        self.job_id = job_id
        self.run_at = run_at

    def cancel(self) -> bool:
        """Cancel the timer; False if it already fired or was cancelled."""
        return self._scheduler.cancel(self.job_id)

    @property
    def pending(self) -> bool:
        return self._scheduler.is_pending(self.job_id)

    def __repr__(self) -> str:
        return f"TimerHandle(job_id={self.job_id!r}, run_at={self.run_at.isoformat()})"


class SessionTimerScheduler:
    """
    Heap-based one-shot scheduler with a bounded worker pool.
    """

    def __init__(
        self,
        check_interval_seconds: float = 1.0,
        max_workers: int = 4,
        *,
        clock: Clock = utc_now,
    ):
        """
        Args:
            check_interval_seconds: How often the loop looks for due timers
            max_workers: Maximum number of timer callbacks running at once
            clock: Returns the current aware datetime
        """
        self._check_interval = float(check_interval_seconds)
        self._max_workers = int(max_workers)
        self._clock = clock

        self._jobs: dict[str, TimerJob] = {}
        self._heap: list[tuple[float, int, str]] = []
        self._seq = itertools.count()
        self._ids = itertools.count(1)
        self._job_lock = threading.RLock()

        self._running = False
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None

    # ==================== Scheduling ====================

    def schedule_once(
        self,
        run_at: datetime,
        func: Callable[..., Any],
        *args: Any,
        name: str = "",
        **kwargs: Any,
    ) -> TimerHandle:
        """Run ``func(*args, **kwargs)`` once at ``run_at``."""
        job_id = f"{name or func.__name__}#{next(self._ids)}"
        job = TimerJob(job_id=job_id, run_at=run_at, func=func, name=name, args=args, kwargs=kwargs)
        with self._job_lock:
            self._jobs[job_id] = job
            heapq.heappush(self._heap, (run_at.timestamp(), next(self._seq), job_id))
        logger.debug("Scheduled timer %s at %s", job_id, run_at.isoformat())
        return TimerHandle(self, job_id, run_at)

    def schedule_after(self, delay: timedelta, func: Callable[..., Any], *args: Any, name: str = "", **kwargs: Any) -> TimerHandle:
        return self.schedule_once(self._clock() + delay, func, *args, name=name, **kwargs)

    def cancel(self, job_id: str) -> bool:
        with self._job_lock:
            if self._jobs.pop(job_id, None) is None:
                return False
        logger.debug("Cancelled timer %s", job_id)
        return True

    def is_pending(self, job_id: str) -> bool:
        with self._job_lock:
            return job_id in self._jobs

    def pending_jobs(self) -> list[TimerJob]:
        with self._job_lock:
            return sorted(self._jobs.values(), key=lambda j: j.run_at)

    # ==================== Lifecycle ====================

    def start(self) -> None:
        """Start the scheduler loop thread and worker pool."""
        if self._running:
            logger.warning("Session timer scheduler already running")
            return
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="SessionTimer")
        self._running = True
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="SessionTimerScheduler")
        self._thread.start()
        logger.info("Session timer scheduler started")

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        if not self._running:
            return
        self._running = False
        if wait and self._thread:
            self._thread.join(timeout=timeout)
        if self._executor:
            self._executor.shutdown(wait=wait)
            self._executor = None
        logger.info("Session timer scheduler stopped")

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        """Alias for stop()."""
        self.stop(wait=wait, timeout=timeout)

    def is_running(self) -> bool:
        return self._running

    def _run_loop(self) -> None:
        while self._running:
            try:
                self.process_due_jobs()
            except Exception as e:
                logger.error("Error in session timer loop: %s", e, exc_info=True)
            time.sleep(self._check_interval)

    # ==================== Execution ====================

    def process_due_jobs(self) -> int:
        """Fire every timer whose time has come; returns how many were fired."""
        now_ts = self._clock().timestamp()
        due: list[TimerJob] = []
        with self._job_lock:
            while self._heap and self._heap[0][0] <= now_ts:
                _run_at_ts, _seq, job_id = heapq.heappop(self._heap)
                job = self._jobs.pop(job_id, None)
                if job is None:
                    continue  # cancelled -> stale heap entry
                due.append(job)

        for job in due:
            executor = self._executor
            if executor is None:
                self._execute_job(job)
                continue
            try:
                executor.submit(self._execute_job, job)
            except RuntimeError as e:
                # Pool shut down between the check and the submit
                logger.warning("Executor unavailable for timer %s (%s); running inline", job.job_id, e)
                self._execute_job(job)
        return len(due)

    def _execute_job(self, job: TimerJob) -> None:
        started = time.perf_counter()
        try:
            job.func(*job.args, **job.kwargs)
        except Exception as e:
            logger.error("Timer %s failed: %s", job.job_id, e, exc_info=True)
            return
        logger.debug("Timer %s completed in %.3fs", job.job_id, time.perf_counter() - started)
