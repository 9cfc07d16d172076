"""
Module: sip_kernel.models.investment_plan
Responsibility: ORM persistence for recurring investment plans.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/dtos.py only.

Invariants enforced:
    - amount > 0 and end_date >= start_date (CHECK constraints; the CRUD
      layer validates first with ``validate_plan_fields``).
    - The scheduler core only moves status ACTIVE -> COMPLETED.

Audit relevance:
    Plans are never deleted by the core; their transactions form the
    append-only audit trail of every execution attempt.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sip_kernel.db.base import TrackedBase, UUIDString
from sip_kernel.domain.dtos import InvestmentPlanInfo, PlanFrequency, PlanStatus


class InvestmentPlan(TrackedBase):
    """
    A recurring investment instruction: fixed amount, fixed frequency,
    one instrument.

    Guarantees:
        - status holds a PlanStatus value.
        - frequency holds a PlanFrequency value.
    """

    __tablename__ = "investment_plans"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_plan_amount_positive"),
        CheckConstraint(
            "end_date IS NULL OR end_date >= start_date",
            name="ck_plan_end_after_start",
        ),
        Index("idx_plan_status", "status"),
        Index("idx_plan_symbol", "symbol"),
        Index("idx_plan_account", "account_id"),
        Index("idx_plan_goal", "goal_id"),
        Index("idx_plan_start_date", "start_date"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Instrument identifier passed to the price source (scheme code / ticker)
    symbol: Mapped[str] = mapped_column(String(50), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    frequency: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PlanStatus.ACTIVE.value,
        nullable=False,
    )

    goal_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    transactions: Mapped[list["PlanTransaction"]] = relationship(
        "PlanTransaction",
        back_populates="plan",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dto(self) -> InvestmentPlanInfo:
        return InvestmentPlanInfo(
            plan_id=self.id,
            name=self.name,
            symbol=self.symbol,
            amount=self.amount,
            frequency=PlanFrequency(self.frequency),
            start_date=self.start_date,
            end_date=self.end_date,
            status=PlanStatus(self.status),
            goal_id=self.goal_id,
            account_id=self.account_id,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, dto: InvestmentPlanInfo) -> InvestmentPlan:
        return cls(
            id=dto.plan_id,
            name=dto.name,
            symbol=dto.symbol,
            amount=dto.amount,
            frequency=dto.frequency.value,
            start_date=dto.start_date,
            end_date=dto.end_date,
            status=dto.status.value,
            goal_id=dto.goal_id,
            account_id=dto.account_id,
            notes=dto.notes,
        )

    def __repr__(self) -> str:
        return f"<InvestmentPlan {self.name} {self.symbol} {self.status}>"
