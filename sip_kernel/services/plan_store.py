"""
PlanStore -- read access to investment plans and the one status
transition the scheduler core performs.

Contract:
    Accepts a Session from the caller.  Returns frozen DTOs, never ORM
    instances, so results can cross thread boundaries.  Does NOT commit;
    the caller owns the transaction scope.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from sip_kernel.domain.dtos import (
    InvestmentPlanInfo,
    PlanStatus,
    PlanTransactionInfo,
)
from sip_kernel.exceptions import PlanNotFoundError
from sip_kernel.logging_config import get_logger
from sip_kernel.models.investment_plan import InvestmentPlan
from sip_kernel.models.plan_transaction import PlanTransaction

logger = get_logger("services.plan_store")


class PlanStore:
    """Plan queries and the ACTIVE -> COMPLETED transition."""

    def __init__(self, session: Session):
        self._session = session

    def list_plans(self, status: PlanStatus | None = None) -> list[InvestmentPlanInfo]:
        """List plans, optionally filtered by status, oldest start first."""
        stmt = select(InvestmentPlan).order_by(
            InvestmentPlan.start_date, InvestmentPlan.name,
        )
        if status is not None:
            stmt = stmt.where(InvestmentPlan.status == status.value)
        return [plan.to_dto() for plan in self._session.scalars(stmt)]

    def get_plan(self, plan_id: UUID) -> InvestmentPlanInfo:
        """
        Get a plan by id.

        Raises:
            PlanNotFoundError: If no plan has this id.
        """
        plan = self._session.get(InvestmentPlan, plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan.to_dto()

    def transactions_for(
        self, plan_ids: Iterable[UUID],
    ) -> dict[UUID, list[PlanTransactionInfo]]:
        """Transaction histories keyed by plan id, oldest first.

        Every requested id is present in the result (empty list when the
        plan has no transactions).
        """
        ids = list(plan_ids)
        histories: dict[UUID, list[PlanTransactionInfo]] = defaultdict(list)
        for plan_id in ids:
            histories[plan_id] = []
        if not ids:
            return dict(histories)

        stmt = (
            select(PlanTransaction)
            .where(PlanTransaction.plan_id.in_(ids))
            .order_by(PlanTransaction.transaction_date, PlanTransaction.created_at)
        )
        for txn in self._session.scalars(stmt):
            histories[txn.plan_id].append(txn.to_dto())
        return dict(histories)

    def mark_completed(self, plan_id: UUID) -> bool:
        """Transition a plan from ACTIVE to COMPLETED.

        Returns True if the row changed.  A plan that is not ACTIVE (for
        example paused in the meantime) is left alone.
        """
        result = self._session.execute(
            update(InvestmentPlan)
            .where(
                InvestmentPlan.id == plan_id,
                InvestmentPlan.status == PlanStatus.ACTIVE.value,
            )
            .values(status=PlanStatus.COMPLETED.value)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount == 1
        if changed:
            logger.info(
                "plan_marked_completed",
                extra={"plan_id": str(plan_id)},
            )
        return changed
