"""Scheduler services - execution, retries, batching, jobs and supervision."""

from sip_batch.services.batch_processor import BatchProcessor, partition
from sip_batch.services.cleanup import CleanupJob
from sip_batch.services.executor import TransactionExecutor, compute_units
from sip_batch.services.failed_retry import FailedTransactionRetrier
from sip_batch.services.periodic import PeriodicTask
from sip_batch.services.retry import RetryCoordinator
from sip_batch.services.supervisor import SchedulerJobs, SchedulerSupervisor

__all__ = [
    "BatchProcessor",
    "partition",
    "CleanupJob",
    "TransactionExecutor",
    "compute_units",
    "FailedTransactionRetrier",
    "PeriodicTask",
    "RetryCoordinator",
    "SchedulerJobs",
    "SchedulerSupervisor",
]
