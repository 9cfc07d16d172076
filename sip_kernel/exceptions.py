"""
Typed exception hierarchy for the SIP kernel and scheduler.

Every error has a typed class (catch by type, not message), a ``code``
class attribute (machine-readable, API-safe) and structured attributes
(not just a message string).  Per-plan failures are converted into
result data by the executor using ``code``; only configuration and
lookup errors escape to callers.

    SipKernelError (base)
    |
    +-- PlanError
    |   +-- PlanNotFoundError
    |   +-- PlanInactiveError
    |   +-- PlanExpiredError
    |
    +-- PriceUnavailableError
    |
    +-- PersistenceFailureError
    |
    +-- SchedulerError
        +-- ConfigInvalidError
        +-- JobAlreadyRunningError

Category     | Code                 | When raised
-------------|----------------------|------------------------------------------
Plan         | PLAN_NOT_FOUND       | Plan id does not exist
             | PLAN_INACTIVE        | Plan status is not ACTIVE at execution
             | PLAN_EXPIRED         | Target date is past the plan's end date
Price        | PRICE_UNAVAILABLE    | Lookup failed or returned price <= 0
Persistence  | PERSISTENCE_FAILURE  | Write to the store failed
Scheduler    | CONFIG_INVALID       | Scheduler config fails validation
             | JOB_ALREADY_RUNNING  | A run of the same job is in progress
"""

from datetime import date
from decimal import Decimal
from uuid import UUID


class SipKernelError(Exception):
    """
    Base exception for all SIP kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "SIP_KERNEL_ERROR"


# Plan-related exceptions


class PlanError(SipKernelError):
    """Base exception for plan-related errors."""

    code: str = "PLAN_ERROR"


class PlanNotFoundError(PlanError):
    """Plan with given ID was not found."""

    code: str = "PLAN_NOT_FOUND"

    def __init__(self, plan_id: UUID | str):
        self.plan_id = str(plan_id)
        super().__init__(f"Plan not found: {plan_id}")


class PlanInactiveError(PlanError):
    """Plan is not ACTIVE at execution time."""

    code: str = "PLAN_INACTIVE"

    def __init__(self, plan_id: UUID | str, status: str):
        self.plan_id = str(plan_id)
        self.status = status
        super().__init__(f"Plan inactive: {plan_id} has status {status}")


class PlanExpiredError(PlanError):
    """Target date is after the plan's end date; the plan was completed."""

    code: str = "PLAN_EXPIRED"

    def __init__(self, plan_id: UUID | str, end_date: date, target_date: date):
        self.plan_id = str(plan_id)
        self.end_date = end_date.isoformat()
        self.target_date = target_date.isoformat()
        super().__init__(
            f"Plan reached end date {end_date.isoformat()} "
            f"and has been marked as completed"
        )


# Price exceptions


class PriceUnavailableError(SipKernelError):
    """Price lookup failed or returned a non-positive price."""

    code: str = "PRICE_UNAVAILABLE"

    def __init__(
        self,
        symbol: str,
        price: Decimal | None = None,
        reason: str | None = None,
    ):
        self.symbol = symbol
        self.price = str(price) if price is not None else None
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Invalid price for {symbol}: {price}{detail}")


# Persistence exceptions


class PersistenceFailureError(SipKernelError):
    """A write to the persistent store failed."""

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Persistence failure during {operation}: {reason}")


# Scheduler exceptions


class SchedulerError(SipKernelError):
    """Base exception for scheduler supervisor errors."""

    code: str = "SCHEDULER_ERROR"


class ConfigInvalidError(SchedulerError):
    """Supplied scheduler configuration failed validation."""

    code: str = "CONFIG_INVALID"

    def __init__(self, errors: list[str] | tuple[str, ...]):
        self.errors = list(errors)
        super().__init__(f"Invalid scheduler config: {'; '.join(self.errors)}")


class JobAlreadyRunningError(SchedulerError):
    """Another run of the same job is still in progress."""

    code: str = "JOB_ALREADY_RUNNING"

    def __init__(self, job: str):
        self.job = job
        super().__init__(f"Job already running: {job}")
