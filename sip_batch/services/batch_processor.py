"""
BatchProcessor -- selects due plans and executes them in bounded batches.

Contract:
    ``process(target_date)`` finds every ACTIVE plan whose next due date is
    on or before ``target_date``, partitions the due set into batches of
    ``batch_size`` and executes each plan through the RetryCoordinator.
    Plans in one batch run concurrently; batches run one after another
    with ``inter_batch_delay_seconds`` between them.

Architecture: sip_batch/services.  Selection uses the pure due-date
    resolver; plan and history reads go through PlanStore in a short
    session scope.  Execution sessions are opened by the executor.

Failure isolation:
    A failing plan is a failed ``PlanProcessingResult``; an unexpected
    exception raised for one plan is converted into one.  Nothing a
    single plan does aborts the batch.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable, Sequence

from sqlalchemy.orm import Session

from sip_kernel.db.engine import session_scope
from sip_kernel.domain.clock import Clock, SystemClock
from sip_kernel.domain.dtos import InvestmentPlanInfo, PlanStatus
from sip_kernel.logging_config import get_logger
from sip_kernel.services.plan_store import PlanStore

from sip_batch.domain.due_dates import DueDateReason, resolve_due_date
from sip_batch.domain.types import BatchProcessingResult, PlanProcessingResult
from sip_batch.services.retry import RetryCoordinator

logger = get_logger("batch.processor")


def partition(items: Sequence, size: int) -> list[list]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class BatchProcessor:
    """Processes all due plans for a target date."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        retry_coordinator: RetryCoordinator,
        clock: Clock | None = None,
        batch_size: int = 10,
        inter_batch_delay_seconds: float = 1.0,
        sleeper: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._session_factory = session_factory
        self._retry = retry_coordinator
        self._clock = clock or SystemClock()
        self._batch_size = batch_size
        self._inter_batch_delay = inter_batch_delay_seconds
        self._sleep = sleeper

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def find_due_plans(self, target_date: date) -> list[InvestmentPlanInfo]:
        """ACTIVE plans due on or before ``target_date``.

        A plan whose next due date would pass its end date is skipped
        until ``target_date`` itself is past the end date.  From then on
        it is selected so the executor completes it and reports
        PLAN_EXPIRED for it.
        """
        due: list[InvestmentPlanInfo] = []
        with session_scope(self._session_factory) as session:
            store = PlanStore(session)
            plans = store.list_plans(status=PlanStatus.ACTIVE)
            histories = store.transactions_for(p.plan_id for p in plans)

            for plan in plans:
                resolution = resolve_due_date(plan, histories[plan.plan_id])
                if resolution.reason == DueDateReason.PAST_END_DATE:
                    if plan.end_date is not None and target_date > plan.end_date:
                        due.append(plan)
                    continue
                if (
                    resolution.next_due_date is not None
                    and resolution.next_due_date <= target_date
                ):
                    due.append(plan)

        logger.info(
            "due_plans_selected",
            extra={
                "target_date": target_date,
                "active_plans": len(plans),
                "due_plans": len(due),
            },
        )
        return due

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def process(self, target_date: date | None = None) -> BatchProcessingResult:
        """Execute every due plan.  ``target_date`` defaults to today."""
        start = time.monotonic()
        target = target_date or self._clock.today()

        logger.info(
            "batch_processing_started",
            extra={"target_date": target, "batch_size": self._batch_size},
        )

        plans = self.find_due_plans(target)
        if not plans:
            result = BatchProcessingResult.empty(
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            logger.info("batch_processing_completed", extra={"total_processed": 0})
            return result

        results = self.run_batches(
            [(plan, target) for plan in plans],
        )
        batch_count = len(partition(plans, self._batch_size))

        result = BatchProcessingResult.from_results(
            results,
            duration_ms=int((time.monotonic() - start) * 1000),
            batch_count=batch_count,
        )
        logger.info(
            "batch_processing_completed",
            extra={
                "total_processed": result.total_processed,
                "successful": result.successful,
                "failed": result.failed,
                "batch_count": result.batch_count,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def run_batches(
        self,
        work: Sequence[tuple[InvestmentPlanInfo, date]],
    ) -> list[PlanProcessingResult]:
        """Execute (plan, target_date) pairs batch by batch, order preserved."""
        batches = partition(work, self._batch_size)
        results: list[PlanProcessingResult] = []

        for index, batch in enumerate(batches):
            logger.debug(
                "batch_started",
                extra={"batch_index": index, "batch_items": len(batch)},
            )
            results.extend(self._run_batch(batch))

            if index < len(batches) - 1 and self._inter_batch_delay > 0:
                self._sleep(self._inter_batch_delay)

        return results

    def _run_batch(
        self,
        batch: list[tuple[InvestmentPlanInfo, date]],
    ) -> list[PlanProcessingResult]:
        with ThreadPoolExecutor(
            max_workers=len(batch), thread_name_prefix="sip-batch",
        ) as pool:
            futures = [
                pool.submit(self._retry.execute_with_retry, plan, target)
                for plan, target in batch
            ]
            outcomes: list[PlanProcessingResult] = []
            for (plan, _), future in zip(batch, futures):
                try:
                    outcomes.append(future.result())
                except Exception as exc:
                    logger.exception(
                        "plan_processing_unexpected_error",
                        extra={"plan_id": str(plan.plan_id)},
                    )
                    outcomes.append(PlanProcessingResult(
                        plan_id=plan.plan_id,
                        success=False,
                        error=str(exc) or type(exc).__name__,
                        error_code="UNHANDLED_EXCEPTION",
                    ))
        return outcomes
