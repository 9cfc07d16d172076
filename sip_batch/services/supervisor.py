"""
SchedulerSupervisor -- owns the processing, retry and cleanup timers.

Contract:
    Per job the state machine is Stopped -> Running (timer armed) ->
    Stopped.  ``start(config)`` clears existing timers, stores the config
    merged over defaults and arms every enabled job.  ``update_config``
    merges into the current config and re-arms.  ``ConfigInvalidError``
    is raised before any state changes.

    Manual triggers run a job body once, immediately, and return a
    ``JobRunOutcome``; they never raise.  Scheduled bodies that raise are
    logged and the timer stays armed.

Run guard:
    Each job has a non-blocking lock.  A run that finds its job already
    in progress is skipped: a scheduled fire logs and returns, a manual
    trigger reports JOB_ALREADY_RUNNING.

Non-goals:
    - NOT distributed: one supervisor instance per deployment.
    - ``stop()`` does not interrupt a job body already running.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Mapping
from uuid import uuid4

from sip_kernel.domain.clock import Clock, SystemClock
from sip_kernel.exceptions import JobAlreadyRunningError, SipKernelError
from sip_kernel.logging_config import LogContext, get_logger

from sip_batch.domain.config import SchedulerConfig
from sip_batch.domain.types import JobName, JobRunOutcome, JobStatus, SchedulerStatus
from sip_batch.services.batch_processor import BatchProcessor
from sip_batch.services.cleanup import CleanupJob
from sip_batch.services.failed_retry import FailedTransactionRetrier
from sip_batch.services.periodic import PeriodicTask

logger = get_logger("batch.supervisor")

ConfigInput = Mapping[str, Any] | SchedulerConfig | None


@dataclass(frozen=True)
class SchedulerJobs:
    """The job bodies a supervisor drives, built for one config."""

    batch_processor: BatchProcessor
    failed_retrier: FailedTransactionRetrier
    cleanup_job: CleanupJob


class SchedulerSupervisor:
    """Start/stop/update/status control over the three periodic jobs."""

    def __init__(
        self,
        jobs_factory: Callable[[SchedulerConfig], SchedulerJobs],
        clock: Clock | None = None,
        config: SchedulerConfig | None = None,
    ):
        self._jobs_factory = jobs_factory
        self._clock = clock or SystemClock()
        self._config = config or SchedulerConfig()
        self._jobs = jobs_factory(self._config)
        self._tasks: dict[JobName, PeriodicTask] = {}
        self._retired: list[PeriodicTask] = []
        self._startup_timer: threading.Timer | None = None
        self._control_lock = threading.RLock()
        self._run_locks = {job: threading.Lock() for job in JobName}

    @property
    def config(self) -> SchedulerConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, config: ConfigInput = None) -> SchedulerStatus:
        """Replace the config (merged over defaults) and arm enabled jobs.

        Raises:
            ConfigInvalidError: Supervisor state is left unchanged.
        """
        new_config = SchedulerConfig().merged(config)
        self._apply(new_config)
        logger.info("scheduler_started", extra={"config": new_config.to_dict()})
        return self.status()

    def stop(self) -> SchedulerStatus:
        with self._control_lock:
            self._cancel_startup_timer()
            self._clear_tasks()
        logger.info("scheduler_stopped")
        return self.status()

    def restart(self, config: ConfigInput = None) -> SchedulerStatus:
        """``stop()`` then ``start(config)``; validated before stopping."""
        new_config = SchedulerConfig().merged(config)
        self.stop()
        self._apply(new_config)
        logger.info("scheduler_restarted", extra={"config": new_config.to_dict()})
        return self.status()

    def update_config(self, overrides: ConfigInput) -> SchedulerStatus:
        """Merge ``overrides`` into the current config and re-arm.

        Raises:
            ConfigInvalidError: Supervisor state is left unchanged.
        """
        with self._control_lock:
            new_config = self._config.merged(overrides)
            self._apply(new_config)
        logger.info("scheduler_config_updated", extra={"config": new_config.to_dict()})
        return self.status()

    def initialize(self, config: ConfigInput = None) -> SchedulerStatus:
        """``start(config)`` plus a one-shot processing check after
        ``startup_check_delay_ms`` to catch up on periods missed while down.
        """
        status = self.start(config)
        delay = self._config.startup_check_delay_ms / 1000

        timer = threading.Timer(delay, self._startup_check)
        timer.daemon = True
        with self._control_lock:
            self._cancel_startup_timer()
            self._startup_timer = timer
        timer.start()
        logger.info("scheduler_initialized", extra={"startup_check_delay_seconds": delay})
        return status

    def shutdown(self, timeout: float | None = 30.0) -> None:
        """Stop all jobs and wait for their threads to exit."""
        with self._control_lock:
            self._cancel_startup_timer()
            tasks = list(self._tasks.values()) + self._retired
            self._clear_tasks()
            self._retired = []
        for task in tasks:
            task.join(timeout=timeout)
        logger.info("scheduler_shutdown")

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def status(self) -> SchedulerStatus:
        with self._control_lock:
            config = self._config
            intervals = {
                JobName.PROCESSING: (config.processing_interval_ms, config.enable_processing),
                JobName.RETRY: (config.retry_interval_ms, config.enable_retry),
                JobName.CLEANUP: (config.cleanup_interval_ms, config.enable_cleanup),
            }
            jobs = []
            for job, (interval_ms, enabled) in intervals.items():
                task = self._tasks.get(job)
                running = task is not None and task.is_running
                jobs.append(JobStatus(
                    job=job,
                    running=running,
                    interval_ms=interval_ms,
                    enabled=enabled,
                    next_run_at=task.next_run_at if running else None,
                    run_count=task.run_count if task is not None else 0,
                ))
        return SchedulerStatus(
            running=any(j.running for j in jobs),
            jobs=tuple(jobs),
            config=config,
        )

    # -------------------------------------------------------------------------
    # Manual triggers
    # -------------------------------------------------------------------------

    def manual_process(self, target_date: date | None = None) -> JobRunOutcome:
        return self._run_manual(JobName.PROCESSING, target_date=target_date)

    def manual_retry(self) -> JobRunOutcome:
        return self._run_manual(JobName.RETRY)

    def manual_cleanup(self) -> JobRunOutcome:
        return self._run_manual(JobName.CLEANUP)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _apply(self, config: SchedulerConfig) -> None:
        jobs = self._jobs_factory(config)
        with self._control_lock:
            self._clear_tasks()
            self._config = config
            self._jobs = jobs

            enabled = {
                JobName.PROCESSING: (config.enable_processing, config.processing_interval_ms),
                JobName.RETRY: (config.enable_retry, config.retry_interval_ms),
                JobName.CLEANUP: (config.enable_cleanup, config.cleanup_interval_ms),
            }
            for job, (is_enabled, interval_ms) in enabled.items():
                if not is_enabled:
                    continue
                task = PeriodicTask(
                    name=job.value,
                    interval_seconds=interval_ms / 1000,
                    body=self._scheduled_body(job),
                    clock=self._clock,
                )
                self._tasks[job] = task
                task.start()

    def _clear_tasks(self) -> None:
        for task in self._tasks.values():
            task.stop()
            self._retired.append(task)
        self._tasks = {}
        self._retired = [t for t in self._retired if t.is_alive]

    def _cancel_startup_timer(self) -> None:
        if self._startup_timer is not None:
            self._startup_timer.cancel()
            self._startup_timer = None

    def _scheduled_body(self, job: JobName) -> Callable[[], None]:
        def body() -> None:
            try:
                self._run_job(job)
            except JobAlreadyRunningError:
                logger.warning("scheduled_run_skipped", extra={"job": job.value})
        return body

    def _startup_check(self) -> None:
        outcome = self._run_manual(JobName.PROCESSING)
        logger.info(
            "startup_check_completed",
            extra={"success": outcome.success, "error": outcome.error},
        )

    def _run_manual(self, job: JobName, target_date: date | None = None) -> JobRunOutcome:
        try:
            result = self._run_job(job, target_date=target_date)
        except SipKernelError as exc:
            logger.warning(
                "manual_run_failed",
                extra={"job": job.value, "error_code": exc.code, "error": str(exc)},
            )
            return JobRunOutcome(job=job, success=False, error=str(exc), error_code=exc.code)
        except Exception as exc:
            logger.exception("manual_run_failed", extra={"job": job.value})
            return JobRunOutcome(
                job=job,
                success=False,
                error=str(exc) or type(exc).__name__,
                error_code="UNHANDLED_EXCEPTION",
            )
        return JobRunOutcome(job=job, success=True, result=result)

    def _run_job(self, job: JobName, target_date: date | None = None) -> Any:
        """Run one job body under its run guard.

        Raises:
            JobAlreadyRunningError: If a run of ``job`` is in progress.
        """
        lock = self._run_locks[job]
        if not lock.acquire(blocking=False):
            raise JobAlreadyRunningError(job.value)

        try:
            with self._control_lock:
                jobs = self._jobs
            with LogContext.bind(job=job.value, run_id=str(uuid4())):
                logger.info("job_run_started", extra={"job": job.value})
                if job == JobName.PROCESSING:
                    result = jobs.batch_processor.process(
                        target_date or self._clock.today(),
                    )
                elif job == JobName.RETRY:
                    result = jobs.failed_retrier.retry_failed()
                else:
                    result = jobs.cleanup_job.run()
                logger.info("job_run_completed", extra={"job": job.value})
                return result
        finally:
            lock.release()
