"""
Tests for sip_batch.services.cleanup -- CleanupJob.
"""

from datetime import date, datetime

import pytest

from sip_kernel.domain.dtos import TransactionStatus

from sip_batch.domain.config import DAY_MS
from sip_batch.services.cleanup import CleanupJob

FAILED = TransactionStatus.FAILED
COMPLETED = TransactionStatus.COMPLETED


@pytest.fixture
def cleanup(session_factory, clock):
    # clock: 2024-02-01 09:00 -> default cutoff 2024-01-02 09:00
    return CleanupJob(session_factory, clock)


class TestCleanupJob:
    def test_deletes_only_stale_failed_rows(
        self, cleanup, make_plan, add_transaction, transaction_rows,
    ):
        plan = make_plan()
        add_transaction(plan, date(2024, 1, 1), status=FAILED, created_at=datetime(2024, 1, 1, 9, 0))
        add_transaction(plan, date(2024, 1, 20), status=FAILED, created_at=datetime(2024, 1, 20, 9, 0))
        add_transaction(plan, date(2023, 6, 1), status=COMPLETED, created_at=datetime(2023, 6, 1, 9, 0))

        assert cleanup.run() == 1

        remaining = {(r.transaction_date, r.status) for r in transaction_rows(plan.plan_id)}
        assert remaining == {
            (date(2024, 1, 20), FAILED.value),
            (date(2023, 6, 1), COMPLETED.value),
        }

    def test_row_at_cutoff_is_kept(self, cleanup, make_plan, add_transaction):
        plan = make_plan()
        add_transaction(plan, date(2024, 1, 2), status=FAILED, created_at=datetime(2024, 1, 2, 9, 0))
        assert cleanup.run() == 0

    def test_idempotent(self, cleanup, make_plan, add_transaction):
        plan = make_plan()
        add_transaction(plan, date(2024, 1, 1), status=FAILED, created_at=datetime(2023, 12, 1, 9, 0))
        assert cleanup.run() == 1
        assert cleanup.run() == 0

    def test_retention_override(self, cleanup, make_plan, add_transaction):
        plan = make_plan()
        add_transaction(plan, date(2024, 1, 20), status=FAILED, created_at=datetime(2024, 1, 20, 9, 0))
        assert cleanup.run(retention_ms=7 * DAY_MS) == 1

    def test_completed_rows_never_deleted(self, cleanup, make_plan, add_transaction, transaction_rows):
        plan = make_plan()
        add_transaction(plan, date(2020, 1, 1), status=COMPLETED, created_at=datetime(2020, 1, 1, 9, 0))
        assert cleanup.run(retention_ms=1) == 0
        assert len(transaction_rows(plan.plan_id)) == 1

    def test_rejects_non_positive_retention(self, session_factory, clock):
        with pytest.raises(ValueError):
            CleanupJob(session_factory, clock, retention_ms=0)
