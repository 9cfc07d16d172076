"""ORM models for the SIP kernel."""

from sip_kernel.models.investment_plan import InvestmentPlan
from sip_kernel.models.plan_transaction import PlanTransaction

__all__ = [
    "InvestmentPlan",
    "PlanTransaction",
]
