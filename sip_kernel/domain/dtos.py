"""
Domain DTOs for investment plans and their transactions.

Pure frozen dataclasses and str-enums.  ZERO I/O, no ORM imports.  The
ORM models in ``sip_kernel.models`` convert to these via ``to_dto()`` so
that the due-date resolver and the executor never touch a Session-bound
object from another thread.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PlanStatus(str, Enum):
    """Lifecycle status of an investment plan.

    The core only performs ACTIVE -> COMPLETED; every other transition
    is made by the CRUD layer.
    """

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PlanFrequency(str, Enum):
    """Contribution frequency, with the number of calendar months per period."""

    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"

    @property
    def months(self) -> int:
        return _FREQUENCY_MONTHS[self]


_FREQUENCY_MONTHS = {
    PlanFrequency.MONTHLY: 1,
    PlanFrequency.QUARTERLY: 3,
    PlanFrequency.YEARLY: 12,
}


class TransactionStatus(str, Enum):
    """Outcome recorded on a plan transaction row."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class InvestmentPlanInfo:
    """Immutable snapshot of an investment plan."""

    plan_id: UUID
    name: str
    symbol: str
    amount: Decimal
    frequency: PlanFrequency
    start_date: date
    account_id: UUID
    status: PlanStatus = PlanStatus.ACTIVE
    end_date: date | None = None
    goal_id: UUID | None = None
    notes: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == PlanStatus.ACTIVE


@dataclass(frozen=True)
class PlanTransactionInfo:
    """Immutable snapshot of one execution attempt for a plan."""

    transaction_id: UUID
    plan_id: UUID
    amount: Decimal
    price: Decimal
    units: Decimal
    transaction_date: date
    status: TransactionStatus
    error_message: str | None = None
    created_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED


def validate_plan_fields(
    name: str | None,
    symbol: str | None,
    amount: Decimal | None,
    start_date: date | None,
    end_date: date | None,
    account_id: UUID | str | None,
) -> tuple[str, ...]:
    """Validate plan input fields.

    Returns a tuple of error messages; empty when the plan is valid.
    """
    errors: list[str] = []
    if not name or not name.strip():
        errors.append("Plan name is required")
    if not symbol or not symbol.strip():
        errors.append("Symbol is required")
    if amount is None or amount <= 0:
        errors.append("Amount must be greater than 0")
    if start_date is None:
        errors.append("Start date is required")
    elif end_date is not None and end_date < start_date:
        errors.append("End date must be on or after start date")
    if not account_id:
        errors.append("Account is required")
    return tuple(errors)
