"""
sip_batch.domain -- Pure types and value objects for the scheduler core.

ZERO I/O.  All types are frozen dataclasses.
"""

from sip_batch.domain.config import SchedulerConfig
from sip_batch.domain.due_dates import (
    DueDateReason,
    DueDateResolution,
    add_months,
    compute_next_due_date,
    is_due,
    resolve_due_date,
    select_due_plans,
)
from sip_batch.domain.retry_policy import RetryPolicy, retry_all, retry_transient_only
from sip_batch.domain.types import (
    BatchProcessingResult,
    JobName,
    JobRunOutcome,
    JobStatus,
    PlanProcessingResult,
    SchedulerStatus,
)

__all__ = [
    "BatchProcessingResult",
    "DueDateReason",
    "DueDateResolution",
    "JobName",
    "JobRunOutcome",
    "JobStatus",
    "PlanProcessingResult",
    "RetryPolicy",
    "SchedulerConfig",
    "SchedulerStatus",
    "add_months",
    "compute_next_due_date",
    "is_due",
    "resolve_due_date",
    "retry_all",
    "retry_transient_only",
    "select_due_plans",
]
