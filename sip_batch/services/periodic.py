"""
PeriodicTask -- runs a callable on a fixed interval in a daemon thread.

Contract:
    - The first fire happens one interval after ``start()``.
    - An exception raised by the body is logged and the task keeps firing.
    - ``stop()`` prevents further fires; a body already running finishes.

Architecture: sip_batch/services.  Same thread + stop-event loop as the
    polling scheduler it replaces; the supervisor owns one task per job.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable

from sip_kernel.domain.clock import Clock, SystemClock
from sip_kernel.logging_config import LogContext, get_logger

logger = get_logger("batch.periodic")


class PeriodicTask:
    """A single interval timer with a cooperative stop signal."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        body: Callable[[], object],
        clock: Clock | None = None,
    ):
        if interval_seconds <= 0:
            raise ValueError(
                f"interval_seconds must be positive, got {interval_seconds}"
            )
        self._name = name
        self._interval = interval_seconds
        self._body = body
        self._clock = clock or SystemClock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state_lock = threading.Lock()
        self._next_run_at: datetime | None = None
        self._run_count = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._stop_event.is_set()
        )

    @property
    def is_alive(self) -> bool:
        """True while the worker thread exists, including a draining body."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def next_run_at(self) -> datetime | None:
        with self._state_lock:
            return self._next_run_at if self.is_running else None

    @property
    def run_count(self) -> int:
        with self._state_lock:
            return self._run_count

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._schedule_next()
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"sip-{self._name}",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "periodic_task_started",
            extra={"task": self._name, "interval_seconds": self._interval},
        )

    def stop(self) -> None:
        """Signal stop.  Does not wait for an in-flight body."""
        self._stop_event.set()
        with self._state_lock:
            self._next_run_at = None
        logger.info("periodic_task_stopped", extra={"task": self._name})

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _schedule_next(self) -> None:
        with self._state_lock:
            self._next_run_at = self._clock.now() + timedelta(seconds=self._interval)

    def _run_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._interval):
            self._fire()
            if not self._stop_event.is_set():
                self._schedule_next()

    def _fire(self) -> None:
        # next_run_at stays None until the body returns and the loop reschedules
        with self._state_lock:
            self._run_count += 1
            self._next_run_at = None
        with LogContext.bind(job=self._name):
            try:
                self._body()
            except Exception:
                logger.exception("periodic_task_failed", extra={"task": self._name})
