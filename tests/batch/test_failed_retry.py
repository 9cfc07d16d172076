"""
Tests for sip_batch.services.failed_retry -- FailedTransactionRetrier.

Validates candidate selection (window, de-duplication, inactive plans,
periods already completed), re-execution at the original transaction
date and that FAILED rows are kept.
"""

from datetime import date, datetime

import pytest

from sip_kernel.domain.dtos import PlanStatus, TransactionStatus

from sip_batch.domain.config import HOUR_MS
from sip_batch.domain.retry_policy import RetryPolicy
from sip_batch.services.batch_processor import BatchProcessor
from sip_batch.services.executor import TransactionExecutor
from sip_batch.services.failed_retry import FailedTransactionRetrier
from sip_batch.services.retry import RetryCoordinator

FAILED = TransactionStatus.FAILED
RECENT = datetime(2024, 2, 1, 8, 0, 0)  # one hour before the clock
STALE = datetime(2024, 1, 30, 9, 0, 0)


@pytest.fixture
def retrier(session_factory, prices, clock, sleeper):
    executor = TransactionExecutor(session_factory, prices, clock)
    processor = BatchProcessor(
        session_factory,
        RetryCoordinator(executor, RetryPolicy(max_attempts=1), sleeper),
        clock,
        batch_size=2,
        sleeper=sleeper,
    )
    return FailedTransactionRetrier(session_factory, processor, clock)


# =============================================================================
# Candidate selection
# =============================================================================


class TestCandidates:
    def test_recent_failure_is_candidate(self, retrier, make_plan, add_transaction):
        plan = make_plan()
        add_transaction(plan, date(2024, 2, 1), status=FAILED, created_at=RECENT)

        candidates = retrier.find_candidates()

        assert [(p.plan_id, d) for p, d in candidates] == [(plan.plan_id, date(2024, 2, 1))]

    def test_failures_outside_window_ignored(self, retrier, make_plan, add_transaction):
        plan = make_plan()
        add_transaction(plan, date(2024, 1, 30), status=FAILED, created_at=STALE)
        assert retrier.find_candidates() == []

    def test_window_override(self, retrier, make_plan, add_transaction):
        plan = make_plan()
        add_transaction(plan, date(2024, 1, 30), status=FAILED, created_at=STALE)
        assert len(retrier.find_candidates(window_ms=72 * HOUR_MS)) == 1

    def test_duplicate_failures_collapsed(self, retrier, make_plan, add_transaction):
        plan = make_plan()
        for minute in (1, 2, 3):
            add_transaction(
                plan, date(2024, 2, 1), status=FAILED,
                created_at=datetime(2024, 2, 1, 8, minute, 0),
            )
        assert len(retrier.find_candidates()) == 1

    @pytest.mark.parametrize("status", [PlanStatus.PAUSED, PlanStatus.CANCELLED])
    def test_inactive_plans_skipped(self, retrier, make_plan, add_transaction, status):
        plan = make_plan(status=status)
        add_transaction(plan, date(2024, 2, 1), status=FAILED, created_at=RECENT)
        assert retrier.find_candidates() == []

    def test_completed_period_skipped(self, retrier, make_plan, add_transaction):
        plan = make_plan()
        add_transaction(plan, date(2024, 2, 1), status=FAILED, created_at=RECENT)
        add_transaction(plan, date(2024, 2, 1), created_at=RECENT)
        assert retrier.find_candidates() == []


# =============================================================================
# Re-execution
# =============================================================================


class TestRetryFailed:
    def test_retries_at_original_date(self, retrier, make_plan, add_transaction, transaction_rows):
        plan = make_plan()
        add_transaction(plan, date(2024, 1, 31), status=FAILED, created_at=RECENT)

        result = retrier.retry_failed()

        assert result.total_processed == 1
        assert result.successful == 1
        rows = transaction_rows(plan.plan_id)
        assert [(r.transaction_date, r.status) for r in rows] == [
            (date(2024, 1, 31), TransactionStatus.FAILED.value),
            (date(2024, 1, 31), TransactionStatus.COMPLETED.value),
        ]

    def test_failed_rows_are_kept(self, retrier, make_plan, add_transaction, transaction_rows):
        plan = make_plan()
        add_transaction(plan, date(2024, 2, 1), status=FAILED, created_at=RECENT)
        retrier.retry_failed()
        statuses = [r.status for r in transaction_rows(plan.plan_id)]
        assert statuses.count(TransactionStatus.FAILED.value) == 1

    def test_second_run_skips_recovered_period(self, retrier, make_plan, add_transaction):
        plan = make_plan()
        add_transaction(plan, date(2024, 2, 1), status=FAILED, created_at=RECENT)
        assert retrier.retry_failed().successful == 1
        assert retrier.retry_failed().total_processed == 0

    def test_still_failing_adds_failed_row(self, retrier, make_plan, add_transaction, transaction_rows):
        plan = make_plan(symbol="MISSING")
        add_transaction(plan, date(2024, 2, 1), status=FAILED, created_at=RECENT)

        result = retrier.retry_failed()

        assert result.failed == 1
        assert len(transaction_rows(plan.plan_id)) == 2

    def test_nothing_to_retry(self, retrier):
        result = retrier.retry_failed()
        assert result.total_processed == 0
        assert result.batch_count == 0

    def test_batches_candidates(self, retrier, make_plan, add_transaction):
        for i in range(3):
            plan = make_plan(name=f"plan-{i}")
            add_transaction(plan, date(2024, 2, 1), status=FAILED, created_at=RECENT)

        result = retrier.retry_failed()

        assert result.total_processed == 3
        assert result.batch_count == 2
