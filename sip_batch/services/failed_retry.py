"""
FailedTransactionRetrier -- re-executes recently failed plan periods.

Picks FAILED rows created within the retry window, collapses them to one
candidate per (plan, transaction_date) and re-runs each candidate at its
original transaction date.  Candidates are skipped when the plan is no
longer ACTIVE or when the period has since completed (a COMPLETED row
exists on or after the failed date).

The FAILED rows themselves are never touched; CleanupJob purges them
once they age out of the retention window.
"""

from __future__ import annotations

import time
from datetime import date, timedelta
from typing import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from sip_kernel.db.engine import session_scope
from sip_kernel.domain.clock import Clock, SystemClock
from sip_kernel.domain.dtos import InvestmentPlanInfo
from sip_kernel.exceptions import PlanNotFoundError
from sip_kernel.logging_config import get_logger
from sip_kernel.services.audit_trail_store import AuditTrailStore
from sip_kernel.services.plan_store import PlanStore

from sip_batch.domain.config import DAY_MS
from sip_batch.domain.types import BatchProcessingResult
from sip_batch.services.batch_processor import BatchProcessor, partition

logger = get_logger("batch.failed_retry")


class FailedTransactionRetrier:
    """Retries FAILED periods through the batch processor's fan-out."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        batch_processor: BatchProcessor,
        clock: Clock | None = None,
        window_ms: int = DAY_MS,
    ):
        self._session_factory = session_factory
        self._processor = batch_processor
        self._clock = clock or SystemClock()
        self._window_ms = window_ms

    @property
    def batch_processor(self) -> BatchProcessor:
        return self._processor

    def find_candidates(
        self, window_ms: int | None = None,
    ) -> list[tuple[InvestmentPlanInfo, date]]:
        """(plan, transaction_date) pairs to re-execute, newest failure first."""
        window = window_ms if window_ms is not None else self._window_ms
        cutoff = self._clock.now() - timedelta(milliseconds=window)

        candidates: list[tuple[InvestmentPlanInfo, date]] = []
        seen: set[tuple[UUID, date]] = set()
        plans: dict[UUID, InvestmentPlanInfo | None] = {}

        with session_scope(self._session_factory) as session:
            audit = AuditTrailStore(session)
            store = PlanStore(session)

            failed = audit.failed_since(cutoff)
            for txn in failed:
                key = (txn.plan_id, txn.transaction_date)
                if key in seen:
                    continue
                seen.add(key)

                if txn.plan_id not in plans:
                    try:
                        plans[txn.plan_id] = store.get_plan(txn.plan_id)
                    except PlanNotFoundError:
                        plans[txn.plan_id] = None
                plan = plans[txn.plan_id]

                if plan is None or not plan.is_active:
                    logger.debug(
                        "failed_retry_skipped_inactive",
                        extra={"plan_id": str(txn.plan_id)},
                    )
                    continue
                if audit.has_completed_on_or_after(txn.plan_id, txn.transaction_date):
                    logger.debug(
                        "failed_retry_skipped_completed",
                        extra={
                            "plan_id": str(txn.plan_id),
                            "transaction_date": txn.transaction_date,
                        },
                    )
                    continue
                candidates.append((plan, txn.transaction_date))

        logger.info(
            "failed_retry_candidates_selected",
            extra={
                "cutoff": cutoff,
                "failed_rows": len(failed),
                "candidates": len(candidates),
            },
        )
        return candidates

    def retry_failed(self, window_ms: int | None = None) -> BatchProcessingResult:
        start = time.monotonic()
        candidates = self.find_candidates(window_ms)
        if not candidates:
            return BatchProcessingResult.empty(
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        results = self._processor.run_batches(candidates)
        result = BatchProcessingResult.from_results(
            results,
            duration_ms=int((time.monotonic() - start) * 1000),
            batch_count=len(partition(candidates, self._processor.batch_size)),
        )
        logger.info(
            "failed_retry_completed",
            extra={
                "total_processed": result.total_processed,
                "successful": result.successful,
                "failed": result.failed,
                "duration_ms": result.duration_ms,
            },
        )
        return result
