"""
sip_batch.domain.types -- Pure frozen dataclasses for the scheduler core.

ZERO I/O.  Follows the pattern of the kernel DTOs: frozen dataclasses
with enum fields and tuples for immutable collections.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Per-plan results
# =============================================================================


@dataclass(frozen=True)
class PlanProcessingResult:
    """Outcome of executing one plan on one target date.

    ``attempt_count`` is 1 for a single executor call and is set to the
    number of attempts made by the retry coordinator.
    """

    plan_id: UUID
    success: bool
    transaction_id: UUID | None = None
    amount: Decimal | None = None
    price: Decimal | None = None
    units: Decimal | None = None
    error: str | None = None
    error_code: str | None = None
    attempt_count: int = 1


@dataclass(frozen=True)
class BatchProcessingResult:
    """Aggregate outcome of a processing or retry run."""

    total_processed: int
    successful: int
    failed: int
    results: tuple[PlanProcessingResult, ...] = ()
    duration_ms: int = 0
    batch_count: int = 0

    @classmethod
    def empty(cls, duration_ms: int = 0) -> BatchProcessingResult:
        return cls(total_processed=0, successful=0, failed=0, duration_ms=duration_ms)

    @classmethod
    def from_results(
        cls,
        results: list[PlanProcessingResult] | tuple[PlanProcessingResult, ...],
        duration_ms: int,
        batch_count: int = 0,
    ) -> BatchProcessingResult:
        successful = sum(1 for r in results if r.success)
        return cls(
            total_processed=len(results),
            successful=successful,
            failed=len(results) - successful,
            results=tuple(results),
            duration_ms=duration_ms,
            batch_count=batch_count,
        )

    @property
    def failures(self) -> tuple[PlanProcessingResult, ...]:
        return tuple(r for r in self.results if not r.success)


# =============================================================================
# Supervisor types
# =============================================================================


class JobName(str, Enum):
    """The three periodic jobs owned by the supervisor."""

    PROCESSING = "processing"
    RETRY = "retry"
    CLEANUP = "cleanup"


@dataclass(frozen=True)
class JobRunOutcome:
    """Result of a manual trigger.  Manual triggers never raise."""

    job: JobName
    success: bool
    result: Any = None
    error: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class JobStatus:
    """Snapshot of one periodic job."""

    job: JobName
    running: bool
    interval_ms: int
    enabled: bool
    next_run_at: datetime | None = None
    run_count: int = 0


@dataclass(frozen=True)
class SchedulerStatus:
    """Snapshot of the supervisor.  ``running`` is true if any job runs."""

    running: bool
    jobs: tuple[JobStatus, ...] = field(default_factory=tuple)
    config: Any = None

    def job(self, name: JobName) -> JobStatus:
        for status in self.jobs:
            if status.job == name:
                return status
        raise KeyError(name)
