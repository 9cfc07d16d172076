"""
Module: sip_kernel.models.plan_transaction
Responsibility: ORM persistence for the append-only audit trail of plan
    execution attempts (successful and failed).
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    - COMPLETED rows: price > 0 and units = amount / price.
    - FAILED rows: price = 0, units = 0, error_message set.
    - Rows are never updated.  The only delete path is
      AuditTrailStore.delete_failed_before (stale FAILED rows).

Audit relevance:
    One row per attempt, so a retried contribution leaves one FAILED row per
    failed attempt plus at most one COMPLETED row.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sip_kernel.db.base import Base, UUIDString
from sip_kernel.domain.dtos import PlanTransactionInfo, TransactionStatus


class PlanTransaction(Base):
    """
    One execution attempt of an investment plan.

    Guarantees:
        - created_at is supplied by the writer from the injected Clock so
          retention cutoffs are deterministic.
    """

    __tablename__ = "plan_transactions"

    __table_args__ = (
        CheckConstraint(
            "(status = 'COMPLETED' AND price > 0) "
            "OR (status = 'FAILED' AND price = 0 AND units = 0)",
            name="ck_plan_txn_status_values",
        ),
        Index("idx_plan_txn_plan", "plan_id"),
        Index("idx_plan_txn_date", "transaction_date"),
        Index("idx_plan_txn_status_created", "status", "created_at"),
    )

    plan_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("investment_plans.id", ondelete="CASCADE"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Per-unit rate (NAV) used for the conversion; 0 on FAILED rows
    price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    units: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    plan: Mapped["InvestmentPlan"] = relationship(  # noqa: F821
        "InvestmentPlan",
        back_populates="transactions",
    )

    def to_dto(self) -> PlanTransactionInfo:
        return PlanTransactionInfo(
            transaction_id=self.id,
            plan_id=self.plan_id,
            amount=self.amount,
            price=self.price,
            units=self.units,
            transaction_date=self.transaction_date,
            status=TransactionStatus(self.status),
            error_message=self.error_message,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<PlanTransaction {self.plan_id} {self.transaction_date} "
            f"{self.status}>"
        )
