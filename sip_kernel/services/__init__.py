"""Kernel services - plan store, audit trail store and the price source port."""

from sip_kernel.services.audit_trail_store import (
    AuditTrailEntry,
    AuditTrailStore,
    PlanInvestmentSummary,
    PlanProcessingStats,
    ProcessingStats,
)
from sip_kernel.services.plan_store import PlanStore
from sip_kernel.services.price_source import PriceQuote, PriceSource, StaticPriceSource

__all__ = [
    "AuditTrailEntry",
    "AuditTrailStore",
    "PlanInvestmentSummary",
    "PlanProcessingStats",
    "ProcessingStats",
    "PlanStore",
    "PriceQuote",
    "PriceSource",
    "StaticPriceSource",
]
