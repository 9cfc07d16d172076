"""
Tests for sip_batch.services.executor -- TransactionExecutor.

Validates the execution steps (inactive, expired, price lookup, units,
persist), the audit rows written for each outcome and that the executor
never raises.

Uses a temp-file SQLite database with real ORM models.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from sip_kernel.domain.dtos import PlanStatus, TransactionStatus
from sip_kernel.services.price_source import StaticPriceSource

from sip_batch.services.executor import TransactionExecutor, compute_units


class RaisingPriceSource:
    def get_price(self, symbol):
        raise ConnectionError("price service unreachable")


class FlakySessionFactory:
    """Wraps a session factory; raises on the given (1-based) calls."""

    def __init__(self, factory, fail_calls):
        self._factory = factory
        self._fail_calls = set(fail_calls)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls in self._fail_calls:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        return self._factory()


@pytest.fixture
def executor(session_factory, prices, clock):
    return TransactionExecutor(session_factory, prices, clock)


# =============================================================================
# Success path
# =============================================================================


class TestSuccess:
    def test_completed_row_written(self, executor, make_plan, transaction_rows, clock):
        plan = make_plan(amount="5000", symbol="NIFTYBEES")
        result = executor.execute(plan, date(2024, 2, 1))

        assert result.success
        assert result.transaction_id is not None
        assert result.price == Decimal("245.00")

        rows = transaction_rows(plan.plan_id)
        assert len(rows) == 1
        row = rows[0]
        assert row.status == TransactionStatus.COMPLETED.value
        assert row.transaction_date == date(2024, 2, 1)
        assert row.created_at == clock.now()
        assert row.error_message is None

    def test_units_times_price_equals_amount(self, executor, make_plan):
        plan = make_plan(amount="10000")
        result = executor.execute(plan, date(2024, 2, 1))
        assert result.units == Decimal("40.816326531")
        assert abs(result.units * result.price - plan.amount) < Decimal("0.000001")

    def test_exact_units(self, session_factory, clock, make_plan):
        plan = make_plan(amount="5000", symbol="FUND")
        executor = TransactionExecutor(
            session_factory, StaticPriceSource({"FUND": "100"}), clock,
        )
        result = executor.execute(plan, date(2024, 2, 1))
        assert result.units == Decimal("50")

    def test_logs_completion(self, executor, make_plan, captured_logs):
        plan = make_plan()
        executor.execute(plan, date(2024, 2, 1))
        records = [r for r in captured_logs() if r["message"] == "plan_transaction_completed"]
        assert len(records) == 1
        assert records[0]["plan_id"] == str(plan.plan_id)


# =============================================================================
# Pre-validation
# =============================================================================


class TestPreValidation:
    @pytest.mark.parametrize("status", [PlanStatus.PAUSED, PlanStatus.CANCELLED])
    def test_inactive_plan_writes_nothing(self, executor, make_plan, transaction_rows, prices, status):
        plan = make_plan(status=status)
        result = executor.execute(plan, date(2024, 2, 1))

        assert not result.success
        assert result.error_code == "PLAN_INACTIVE"
        assert transaction_rows(plan.plan_id) == []
        assert prices.calls == []

    def test_scenario_b_expired_plan_completed(
        self, executor, make_plan, add_transaction, transaction_rows, plan_status,
    ):
        plan = make_plan(start_date=date(2024, 1, 1), end_date=date(2024, 1, 15))
        add_transaction(plan, date(2024, 1, 1))

        result = executor.execute(plan, date(2024, 2, 1))

        assert not result.success
        assert result.error_code == "PLAN_EXPIRED"
        assert "end date" in result.error
        assert plan_status(plan.plan_id) == PlanStatus.COMPLETED
        assert len(transaction_rows(plan.plan_id)) == 1

    def test_target_on_end_date_executes(self, executor, make_plan):
        plan = make_plan(end_date=date(2024, 2, 1))
        assert executor.execute(plan, date(2024, 2, 1)).success


# =============================================================================
# Price failures
# =============================================================================


class TestPriceFailures:
    def test_missing_price(self, executor, make_plan, transaction_rows):
        plan = make_plan(symbol="UNKNOWN")
        result = executor.execute(plan, date(2024, 2, 1))

        assert not result.success
        assert result.error_code == "PRICE_UNAVAILABLE"
        rows = transaction_rows(plan.plan_id)
        assert len(rows) == 1
        assert rows[0].status == TransactionStatus.FAILED.value
        assert rows[0].price == 0
        assert rows[0].units == 0
        assert "Invalid price for UNKNOWN" in rows[0].error_message

    @pytest.mark.parametrize("price", ["0", "-12.5"])
    def test_non_positive_price(self, session_factory, clock, make_plan, transaction_rows, price):
        plan = make_plan(symbol="FUND")
        executor = TransactionExecutor(
            session_factory, StaticPriceSource({"FUND": price}), clock,
        )
        result = executor.execute(plan, date(2024, 2, 1))
        assert result.error_code == "PRICE_UNAVAILABLE"
        assert transaction_rows(plan.plan_id)[0].status == TransactionStatus.FAILED.value

    def test_price_source_exception(self, session_factory, clock, make_plan, transaction_rows):
        plan = make_plan()
        executor = TransactionExecutor(session_factory, RaisingPriceSource(), clock)
        result = executor.execute(plan, date(2024, 2, 1))

        assert result.error_code == "PRICE_UNAVAILABLE"
        assert "price service unreachable" in result.error
        assert len(transaction_rows(plan.plan_id)) == 1


# =============================================================================
# Persistence failures
# =============================================================================


class TestPersistenceFailures:
    def test_completed_write_failure_records_failed_row(
        self, session_factory, prices, clock, make_plan, transaction_rows,
    ):
        plan = make_plan()
        flaky = FlakySessionFactory(session_factory, fail_calls={1})
        executor = TransactionExecutor(flaky, prices, clock)

        result = executor.execute(plan, date(2024, 2, 1))

        assert not result.success
        assert result.error_code == "PERSISTENCE_FAILURE"
        rows = transaction_rows(plan.plan_id)
        assert [r.status for r in rows] == [TransactionStatus.FAILED.value]

    def test_failed_row_write_failure_is_swallowed(
        self, session_factory, prices, clock, make_plan, transaction_rows, captured_logs,
    ):
        plan = make_plan()
        flaky = FlakySessionFactory(session_factory, fail_calls={1, 2})
        executor = TransactionExecutor(flaky, prices, clock)

        result = executor.execute(plan, date(2024, 2, 1))

        assert result.error_code == "PERSISTENCE_FAILURE"
        assert transaction_rows(plan.plan_id) == []
        assert any(
            r["message"] == "failed_transaction_record_write_failed"
            for r in captured_logs()
        )


# =============================================================================
# compute_units
# =============================================================================


class TestComputeUnits:
    def test_quantized_to_nine_places(self):
        assert compute_units(Decimal("1000"), Decimal("3")) == Decimal("333.333333333")

    def test_large_units_keep_nine_places(self):
        # 32 significant digits, beyond the default 28-digit context
        units = compute_units(Decimal("100000000000000000000"), Decimal("0.01"))
        assert units == Decimal("10000000000000000000000")
        assert units.as_tuple().exponent == -9

    def test_rejects_non_positive_price(self):
        with pytest.raises(ValueError):
            compute_units(Decimal("1000"), Decimal("0"))
