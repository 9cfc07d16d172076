"""
RetryCoordinator -- bounded sequential retries of a single plan execution.

Attempts run strictly in sequence.  The coordinator stops on the first
success, waits the policy delay between unsuccessful attempts (never after
the last one) and returns the final result annotated with the number of
attempts made.  Every attempt writes its own audit row.
"""

from __future__ import annotations

import dataclasses
import time
from datetime import date
from typing import Callable

from sip_kernel.domain.dtos import InvestmentPlanInfo
from sip_kernel.logging_config import get_logger

from sip_batch.domain.retry_policy import RetryPolicy
from sip_batch.domain.types import PlanProcessingResult
from sip_batch.services.executor import TransactionExecutor

logger = get_logger("batch.retry")


class RetryCoordinator:
    """Runs ``TransactionExecutor.execute`` under a ``RetryPolicy``."""

    def __init__(
        self,
        executor: TransactionExecutor,
        policy: RetryPolicy | None = None,
        sleeper: Callable[[float], None] = time.sleep,
    ):
        self._executor = executor
        self._policy = policy or RetryPolicy()
        self._sleep = sleeper

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def execute_with_retry(
        self,
        plan: InvestmentPlanInfo,
        target_date: date,
    ) -> PlanProcessingResult:
        attempt = 0
        while True:
            delay = self._policy.delay_before(attempt)
            if delay > 0:
                self._sleep(delay)

            result = self._executor.execute(plan, target_date, attempt=attempt)

            if not self._policy.allows_another_attempt(attempt, result):
                break

            logger.info(
                "plan_execution_retry_scheduled",
                extra={
                    "plan_id": str(plan.plan_id),
                    "attempt": attempt + 1,
                    "max_attempts": self._policy.max_attempts,
                    "error_code": result.error_code,
                    "delay_seconds": self._policy.delay_before(attempt + 1),
                },
            )
            attempt += 1

        attempts_made = attempt + 1
        if not result.success:
            logger.warning(
                "plan_execution_gave_up",
                extra={
                    "plan_id": str(plan.plan_id),
                    "attempts": attempts_made,
                    "error_code": result.error_code,
                    "error": result.error,
                },
            )
        return dataclasses.replace(result, attempt_count=attempts_made)
