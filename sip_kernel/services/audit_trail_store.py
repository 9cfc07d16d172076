"""
AuditTrailStore -- append-only ledger of plan execution attempts.

Responsibility:
    Appends COMPLETED / FAILED plan transactions, answers audit queries
    (by plan, date range and status, newest first) and computes per-plan
    and cross-plan aggregates.

Architecture position:
    Kernel > Services.  Accepts a Session from the caller and never
    commits; the executor and the jobs own transaction boundaries.

Invariants enforced:
    - COMPLETED rows carry price > 0; FAILED rows carry price = 0,
      units = 0 and a non-empty error message.
    - Rows are never updated.  ``delete_failed_before`` is the only delete
      path and never touches COMPLETED rows.

Audit relevance:
    Average price is amount-weighted: sum(amount) / sum(units) over
    COMPLETED rows only.  FAILED rows are counted but never valued.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from sip_kernel.domain.dtos import PlanTransactionInfo, TransactionStatus
from sip_kernel.logging_config import get_logger
from sip_kernel.models.investment_plan import InvestmentPlan
from sip_kernel.models.plan_transaction import PlanTransaction

logger = get_logger("services.audit_trail")

_ZERO = Decimal("0")
_PERCENT_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class AuditTrailEntry:
    """One audit row joined with its plan's display name."""

    transaction_id: UUID
    plan_id: UUID
    plan_name: str
    amount: Decimal
    price: Decimal
    units: Decimal
    transaction_date: date
    status: TransactionStatus
    error_message: str | None
    created_at: datetime


@dataclass(frozen=True)
class PlanInvestmentSummary:
    """Aggregates over a plan's COMPLETED transactions."""

    plan_id: UUID
    average_price: Decimal = _ZERO
    total_invested: Decimal = _ZERO
    total_units: Decimal = _ZERO
    transaction_count: int = 0


@dataclass(frozen=True)
class PlanProcessingStats:
    """Per-plan success/failure counts and COMPLETED totals."""

    plan_id: UUID
    successful: int = 0
    failed: int = 0
    total_amount: Decimal = _ZERO
    total_units: Decimal = _ZERO

    @property
    def total(self) -> int:
        return self.successful + self.failed


@dataclass(frozen=True)
class ProcessingStats:
    """Cross-plan processing statistics."""

    total_transactions: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0
    total_amount: Decimal = _ZERO
    total_units: Decimal = _ZERO
    average_price: Decimal = _ZERO
    unique_plans: int = 0
    success_rate: Decimal = _ZERO  # percent, 2 dp
    by_plan: tuple[PlanProcessingStats, ...] = field(default_factory=tuple)


def _average_price(total_amount: Decimal, total_units: Decimal) -> Decimal:
    if total_units <= 0:
        return _ZERO
    return total_amount / total_units


class AuditTrailStore:
    """Append, query and aggregate plan transaction records."""

    def __init__(self, session: Session):
        self._session = session

    # -------------------------------------------------------------------------
    # Append
    # -------------------------------------------------------------------------

    def append_completed(
        self,
        plan_id: UUID,
        amount: Decimal,
        price: Decimal,
        units: Decimal,
        transaction_date: date,
        created_at: datetime,
    ) -> PlanTransactionInfo:
        """Append a COMPLETED row.

        Raises:
            ValueError: If price is not positive.
        """
        if price <= 0:
            raise ValueError(f"COMPLETED transaction requires price > 0, got {price}")

        txn = PlanTransaction(
            plan_id=plan_id,
            amount=amount,
            price=price,
            units=units,
            transaction_date=transaction_date,
            status=TransactionStatus.COMPLETED.value,
            created_at=created_at,
        )
        self._session.add(txn)
        self._session.flush()
        return txn.to_dto()

    def append_failed(
        self,
        plan_id: UUID,
        amount: Decimal,
        transaction_date: date,
        error_message: str,
        created_at: datetime,
    ) -> PlanTransactionInfo:
        """Append a FAILED row (price 0, units 0).

        Raises:
            ValueError: If error_message is empty.
        """
        if not error_message:
            raise ValueError("FAILED transaction requires an error message")

        txn = PlanTransaction(
            plan_id=plan_id,
            amount=amount,
            price=_ZERO,
            units=_ZERO,
            transaction_date=transaction_date,
            status=TransactionStatus.FAILED.value,
            error_message=error_message,
            created_at=created_at,
        )
        self._session.add(txn)
        self._session.flush()
        return txn.to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query(
        self,
        plan_id: UUID | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        status: TransactionStatus | None = None,
    ) -> list[AuditTrailEntry]:
        """Audit rows matching all given filters, newest first.

        Date bounds are inclusive and apply to ``transaction_date``.
        """
        stmt = select(PlanTransaction, InvestmentPlan.name).join(
            InvestmentPlan, PlanTransaction.plan_id == InvestmentPlan.id,
        )
        if plan_id is not None:
            stmt = stmt.where(PlanTransaction.plan_id == plan_id)
        if start_date is not None:
            stmt = stmt.where(PlanTransaction.transaction_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(PlanTransaction.transaction_date <= end_date)
        if status is not None:
            stmt = stmt.where(PlanTransaction.status == status.value)
        stmt = stmt.order_by(
            PlanTransaction.transaction_date.desc(),
            PlanTransaction.created_at.desc(),
        )

        return [
            AuditTrailEntry(
                transaction_id=txn.id,
                plan_id=txn.plan_id,
                plan_name=plan_name,
                amount=txn.amount,
                price=txn.price,
                units=txn.units,
                transaction_date=txn.transaction_date,
                status=TransactionStatus(txn.status),
                error_message=txn.error_message,
                created_at=txn.created_at,
            )
            for txn, plan_name in self._session.execute(stmt)
        ]

    def failed_since(self, cutoff: datetime) -> list[PlanTransactionInfo]:
        """FAILED rows created at or after ``cutoff``, newest first."""
        stmt = (
            select(PlanTransaction)
            .where(
                PlanTransaction.status == TransactionStatus.FAILED.value,
                PlanTransaction.created_at >= cutoff,
            )
            .order_by(PlanTransaction.created_at.desc())
        )
        return [txn.to_dto() for txn in self._session.scalars(stmt)]

    def has_completed_on_or_after(self, plan_id: UUID, on_date: date) -> bool:
        """True if the plan has a COMPLETED row dated ``on_date`` or later."""
        stmt = (
            select(PlanTransaction.id)
            .where(
                PlanTransaction.plan_id == plan_id,
                PlanTransaction.status == TransactionStatus.COMPLETED.value,
                PlanTransaction.transaction_date >= on_date,
            )
            .limit(1)
        )
        return self._session.execute(stmt).first() is not None

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    def plan_summary(self, plan_id: UUID) -> PlanInvestmentSummary:
        """Amount-weighted average price, totals and count for one plan."""
        row = self._session.execute(
            select(
                func.count(PlanTransaction.id),
                func.sum(PlanTransaction.amount),
                func.sum(PlanTransaction.units),
            ).where(
                PlanTransaction.plan_id == plan_id,
                PlanTransaction.status == TransactionStatus.COMPLETED.value,
            )
        ).one()

        count, total_invested, total_units = row
        if not count:
            return PlanInvestmentSummary(plan_id=plan_id)

        total_invested = total_invested or _ZERO
        total_units = total_units or _ZERO
        return PlanInvestmentSummary(
            plan_id=plan_id,
            average_price=_average_price(total_invested, total_units),
            total_invested=total_invested,
            total_units=total_units,
            transaction_count=count,
        )

    def processing_stats(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> ProcessingStats:
        """Success/failure counts and COMPLETED totals, overall and per plan."""
        stmt = select(
            PlanTransaction.plan_id,
            PlanTransaction.status,
            func.count(PlanTransaction.id),
            func.sum(PlanTransaction.amount),
            func.sum(PlanTransaction.units),
        ).group_by(PlanTransaction.plan_id, PlanTransaction.status)
        if start_date is not None:
            stmt = stmt.where(PlanTransaction.transaction_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(PlanTransaction.transaction_date <= end_date)

        per_plan: dict[UUID, dict[str, object]] = defaultdict(
            lambda: {"successful": 0, "failed": 0, "amount": _ZERO, "units": _ZERO}
        )
        for plan_id, status, count, amount, units in self._session.execute(stmt):
            bucket = per_plan[plan_id]
            if status == TransactionStatus.COMPLETED.value:
                bucket["successful"] += count
                bucket["amount"] += amount or _ZERO
                bucket["units"] += units or _ZERO
            else:
                bucket["failed"] += count

        by_plan = tuple(
            PlanProcessingStats(
                plan_id=plan_id,
                successful=bucket["successful"],
                failed=bucket["failed"],
                total_amount=bucket["amount"],
                total_units=bucket["units"],
            )
            for plan_id, bucket in sorted(per_plan.items(), key=lambda kv: str(kv[0]))
        )

        successful = sum(p.successful for p in by_plan)
        failed = sum(p.failed for p in by_plan)
        total = successful + failed
        total_amount = sum((p.total_amount for p in by_plan), _ZERO)
        total_units = sum((p.total_units for p in by_plan), _ZERO)
        success_rate = (
            (Decimal(successful) * 100 / Decimal(total)).quantize(_PERCENT_QUANTUM)
            if total
            else _ZERO
        )

        return ProcessingStats(
            total_transactions=total,
            successful_transactions=successful,
            failed_transactions=failed,
            total_amount=total_amount,
            total_units=total_units,
            average_price=_average_price(total_amount, total_units),
            unique_plans=len(by_plan),
            success_rate=success_rate,
            by_plan=by_plan,
        )

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    def delete_failed_before(self, cutoff: datetime) -> int:
        """Delete FAILED rows created strictly before ``cutoff``.

        Returns the number of rows deleted.
        """
        result = self._session.execute(
            delete(PlanTransaction)
            .where(
                PlanTransaction.status == TransactionStatus.FAILED.value,
                PlanTransaction.created_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0
        logger.info(
            "failed_transactions_deleted",
            extra={"cutoff": cutoff.isoformat(), "deleted": deleted},
        )
        return deleted
