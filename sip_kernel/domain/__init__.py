"""
Pure domain layer.

Immutable DTOs and the clock abstraction, with NO dependencies on the ORM,
the database or I/O (SystemClock excepted).
"""

from sip_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from sip_kernel.domain.dtos import (
    InvestmentPlanInfo,
    PlanFrequency,
    PlanStatus,
    PlanTransactionInfo,
    TransactionStatus,
    validate_plan_fields,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "InvestmentPlanInfo",
    "PlanFrequency",
    "PlanStatus",
    "PlanTransactionInfo",
    "TransactionStatus",
    "validate_plan_fields",
]
