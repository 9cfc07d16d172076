"""
RetryPolicy -- value object describing how plan executions are retried.

Decoupled from the sleep mechanism: the policy only answers "how many
attempts", "how long before attempt N" and "is this failure worth another
attempt".  The RetryCoordinator owns the actual waiting.

The default predicate retries every failure, including PLAN_INACTIVE and
PLAN_EXPIRED.  ``retry_transient_only`` skips the remaining attempts for
terminal failures and is opt-in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from sip_kernel.exceptions import PersistenceFailureError, PriceUnavailableError

from sip_batch.domain.types import PlanProcessingResult

TRANSIENT_ERROR_CODES: frozenset[str] = frozenset({
    PriceUnavailableError.code,
    PersistenceFailureError.code,
})


def retry_all(result: PlanProcessingResult) -> bool:
    return True


def retry_transient_only(result: PlanProcessingResult) -> bool:
    return result.error_code in TRANSIENT_ERROR_CODES


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with fixed or exponential delay.

    ``backoff_multiplier`` of 1.0 gives a fixed delay; 2.0 doubles the
    wait after each failed attempt.
    """

    max_attempts: int = 3
    delay_seconds: float = 5.0
    backoff_multiplier: float = 1.0
    should_retry: Callable[[PlanProcessingResult], bool] = field(
        default=retry_all, compare=False,
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {self.delay_seconds}")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )

    @classmethod
    def from_config(cls, config) -> RetryPolicy:
        """Build from a SchedulerConfig (``max_retry_attempts``, ``retry_delay_ms``)."""
        return cls(
            max_attempts=config.max_retry_attempts,
            delay_seconds=config.retry_delay_ms / 1000,
        )

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before 0-based ``attempt`` (0 for the first)."""
        if attempt <= 0:
            return 0.0
        return self.delay_seconds * (self.backoff_multiplier ** (attempt - 1))

    def allows_another_attempt(
        self, attempt: int, result: PlanProcessingResult,
    ) -> bool:
        """True if a failed 0-based ``attempt`` should be followed by another."""
        if result.success:
            return False
        if attempt + 1 >= self.max_attempts:
            return False
        return self.should_retry(result)
