"""
Pure due-date resolution for investment plans.

Contract:
    ``compute_next_due_date(plan, transactions)`` and friends are PURE --
    no I/O, no clock access; the target date always comes from the caller.

Month-end handling:
    Advancing by N calendar months keeps the day of month when it exists
    in the target month and otherwise clamps to that month's last day:

        2024-01-31 + 1 month   -> 2024-02-29
        2023-01-31 + 1 month   -> 2023-02-28
        2024-08-31 + 3 months  -> 2024-11-30
        2024-02-29 + 12 months -> 2025-02-28

    The step is always taken from the anchor (latest COMPLETED transaction,
    else the start date), so a clamped date becomes the next anchor.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Mapping, Sequence
from uuid import UUID

from dateutil.relativedelta import relativedelta

from sip_kernel.domain.dtos import InvestmentPlanInfo, PlanTransactionInfo


class DueDateReason(str, Enum):
    """Why a resolution did or did not produce a date."""

    DUE_DATE = "due_date"
    INACTIVE = "inactive"
    PAST_END_DATE = "past_end_date"


@dataclass(frozen=True)
class DueDateResolution:
    """Next due date of a plan, or the reason there is none."""

    plan_id: UUID
    reason: DueDateReason
    anchor: date
    next_due_date: date | None = None
    candidate_date: date | None = None  # computed date, even when past end


def add_months(start: date, months: int) -> date:
    """Advance ``start`` by ``months`` calendar months, clamping the day."""
    return start + relativedelta(months=months)


def latest_completed_date(transactions: Iterable[PlanTransactionInfo]) -> date | None:
    """Date of the most recent COMPLETED transaction, if any."""
    dates = [t.transaction_date for t in transactions if t.is_completed]
    return max(dates) if dates else None


def resolve_due_date(
    plan: InvestmentPlanInfo,
    transactions: Sequence[PlanTransactionInfo],
) -> DueDateResolution:
    """Resolve the next due date of ``plan`` from its history.

    Transactions of other plans are ignored, so a shared history list may
    be passed.
    """
    own = [t for t in transactions if t.plan_id == plan.plan_id]
    anchor = latest_completed_date(own) or plan.start_date

    if not plan.is_active:
        return DueDateResolution(
            plan_id=plan.plan_id, reason=DueDateReason.INACTIVE, anchor=anchor,
        )

    candidate = add_months(anchor, plan.frequency.months)

    if plan.end_date is not None and candidate > plan.end_date:
        return DueDateResolution(
            plan_id=plan.plan_id,
            reason=DueDateReason.PAST_END_DATE,
            anchor=anchor,
            candidate_date=candidate,
        )

    return DueDateResolution(
        plan_id=plan.plan_id,
        reason=DueDateReason.DUE_DATE,
        anchor=anchor,
        next_due_date=candidate,
        candidate_date=candidate,
    )


def compute_next_due_date(
    plan: InvestmentPlanInfo,
    transactions: Sequence[PlanTransactionInfo],
) -> date | None:
    """Next due date, or None when inactive or past the end date."""
    return resolve_due_date(plan, transactions).next_due_date


def is_due(
    plan: InvestmentPlanInfo,
    transactions: Sequence[PlanTransactionInfo],
    target_date: date,
) -> bool:
    """True if the plan's next due date is on or before ``target_date``."""
    next_due = compute_next_due_date(plan, transactions)
    return next_due is not None and next_due <= target_date


def select_due_plans(
    plans: Iterable[InvestmentPlanInfo],
    histories: Mapping[UUID, Sequence[PlanTransactionInfo]],
    target_date: date,
) -> list[InvestmentPlanInfo]:
    """Plans from ``plans`` that are due on ``target_date``, order preserved."""
    return [
        plan
        for plan in plans
        if is_due(plan, histories.get(plan.plan_id, ()), target_date)
    ]
