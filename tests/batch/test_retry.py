"""
Tests for sip_batch.services.retry -- RetryCoordinator.

Validates sequential attempts, delays between (not after) attempts,
attempt_count annotation and one audit row per attempt.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from sip_kernel.domain.dtos import TransactionStatus
from sip_kernel.services.price_source import PriceQuote

from sip_batch.domain.retry_policy import RetryPolicy, retry_transient_only
from sip_batch.domain.types import PlanProcessingResult
from sip_batch.services.executor import TransactionExecutor
from sip_batch.services.retry import RetryCoordinator


class SequencePriceSource:
    """Returns prices from a list, one per call; None means unavailable."""

    def __init__(self, prices):
        self._prices = list(prices)
        self.calls = 0

    def get_price(self, symbol):
        price = self._prices[min(self.calls, len(self._prices) - 1)]
        self.calls += 1
        if price is None:
            return None
        return PriceQuote(symbol=symbol, price=Decimal(price), source="test")


class ScriptedExecutor:
    """Executor stub returning canned results."""

    def __init__(self, results):
        self._results = list(results)
        self.attempts: list[int] = []

    def execute(self, plan, target_date, attempt=0):
        self.attempts.append(attempt)
        return self._results[len(self.attempts) - 1]


def _failure(code="PRICE_UNAVAILABLE"):
    return PlanProcessingResult(plan_id=uuid4(), success=False, error="x", error_code=code)


# =============================================================================
# Against the real executor
# =============================================================================


class TestWithExecutor:
    def test_scenario_c_three_failed_attempts(
        self, session_factory, clock, sleeper, make_plan, transaction_rows,
    ):
        plan = make_plan()
        source = SequencePriceSource([None])
        coordinator = RetryCoordinator(
            TransactionExecutor(session_factory, source, clock),
            RetryPolicy(max_attempts=3, delay_seconds=5),
            sleeper=sleeper,
        )

        result = coordinator.execute_with_retry(plan, date(2024, 2, 1))

        assert not result.success
        assert result.attempt_count == 3
        assert result.error_code == "PRICE_UNAVAILABLE"
        rows = transaction_rows(plan.plan_id)
        assert len(rows) == 3
        assert all(r.status == TransactionStatus.FAILED.value for r in rows)
        assert sleeper.calls == [5, 5]

    def test_success_after_failure(
        self, session_factory, clock, sleeper, make_plan, transaction_rows,
    ):
        plan = make_plan()
        source = SequencePriceSource([None, "250"])
        coordinator = RetryCoordinator(
            TransactionExecutor(session_factory, source, clock),
            RetryPolicy(max_attempts=3, delay_seconds=5),
            sleeper=sleeper,
        )

        result = coordinator.execute_with_retry(plan, date(2024, 2, 1))

        assert result.success
        assert result.attempt_count == 2
        statuses = sorted(r.status for r in transaction_rows(plan.plan_id))
        assert statuses == ["COMPLETED", "FAILED"]
        assert sleeper.calls == [5]


# =============================================================================
# Loop mechanics
# =============================================================================


class TestLoop:
    def test_first_success_stops(self, sleeper, make_plan):
        ok = PlanProcessingResult(plan_id=uuid4(), success=True)
        executor = ScriptedExecutor([ok])
        result = RetryCoordinator(executor, RetryPolicy(), sleeper).execute_with_retry(
            make_plan(), date(2024, 2, 1),
        )
        assert result.success
        assert result.attempt_count == 1
        assert executor.attempts == [0]
        assert sleeper.calls == []

    def test_attempt_indices_are_sequential(self, sleeper, make_plan):
        executor = ScriptedExecutor([_failure()] * 4)
        RetryCoordinator(executor, RetryPolicy(max_attempts=4), sleeper).execute_with_retry(
            make_plan(), date(2024, 2, 1),
        )
        assert executor.attempts == [0, 1, 2, 3]

    def test_exponential_backoff(self, sleeper, make_plan):
        executor = ScriptedExecutor([_failure()] * 4)
        policy = RetryPolicy(max_attempts=4, delay_seconds=1, backoff_multiplier=2)
        RetryCoordinator(executor, policy, sleeper).execute_with_retry(
            make_plan(), date(2024, 2, 1),
        )
        assert sleeper.calls == [1, 2, 4]

    def test_zero_delay_never_sleeps(self, sleeper, make_plan):
        executor = ScriptedExecutor([_failure()] * 3)
        RetryCoordinator(executor, RetryPolicy(delay_seconds=0), sleeper).execute_with_retry(
            make_plan(), date(2024, 2, 1),
        )
        assert sleeper.calls == []

    def test_default_policy_retries_terminal_failures(self, sleeper, make_plan):
        executor = ScriptedExecutor([_failure("PLAN_INACTIVE")] * 3)
        result = RetryCoordinator(executor, RetryPolicy(), sleeper).execute_with_retry(
            make_plan(), date(2024, 2, 1),
        )
        assert result.attempt_count == 3

    @pytest.mark.parametrize("code", ["PLAN_INACTIVE", "PLAN_EXPIRED"])
    def test_transient_only_stops_on_terminal(self, sleeper, make_plan, code):
        executor = ScriptedExecutor([_failure(code)] * 3)
        policy = RetryPolicy(should_retry=retry_transient_only)
        result = RetryCoordinator(executor, policy, sleeper).execute_with_retry(
            make_plan(), date(2024, 2, 1),
        )
        assert result.attempt_count == 1
        assert result.error_code == code
