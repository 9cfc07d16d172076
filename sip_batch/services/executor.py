"""
TransactionExecutor -- executes one investment plan on one target date.

Contract:
    ``execute(plan, target_date)`` validates the plan, prices the
    contribution, converts it into units and appends a COMPLETED row.
    Failures after validation append a FAILED row.  Never raises: every
    outcome is a ``PlanProcessingResult``.

Architecture: sip_batch/services.  Imports kernel stores and the price
    source port.  Each write runs in its own session scope from the
    injected session factory, so concurrent executions never share a
    Session.

Failure policy:
    PLAN_INACTIVE       -- no row written.
    PLAN_EXPIRED        -- plan transitioned to COMPLETED, no row written.
    PRICE_UNAVAILABLE   -- FAILED row (best-effort).
    PERSISTENCE_FAILURE -- COMPLETED write failed; FAILED row (best-effort).
    A failing FAILED-row write is logged and swallowed.
"""

from __future__ import annotations

import time
from datetime import date
from decimal import Context, Decimal, InvalidOperation
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sip_kernel.db.engine import session_scope
from sip_kernel.domain.clock import Clock, SystemClock
from sip_kernel.domain.dtos import InvestmentPlanInfo
from sip_kernel.exceptions import (
    PersistenceFailureError,
    PlanExpiredError,
    PlanInactiveError,
    PriceUnavailableError,
    SipKernelError,
)
from sip_kernel.logging_config import LogContext, get_logger
from sip_kernel.services.audit_trail_store import AuditTrailStore
from sip_kernel.services.plan_store import PlanStore
from sip_kernel.services.price_source import PriceSource

from sip_batch.domain.types import PlanProcessingResult

logger = get_logger("batch.executor")

UNITS_QUANTUM = Decimal("0.000000001")

# Matches the Numeric(38, 9) columns the units are stored in
UNITS_CONTEXT = Context(prec=38)


def compute_units(amount: Decimal, price: Decimal) -> Decimal:
    """Units bought for ``amount`` at ``price``, quantized to 9 dp.

    Raises:
        ValueError: If price is not positive.
    """
    if price <= 0:
        raise ValueError("Price must be greater than 0")
    return UNITS_CONTEXT.divide(amount, price).quantize(
        UNITS_QUANTUM, context=UNITS_CONTEXT,
    )


class TransactionExecutor:
    """Executes a single plan contribution and records the attempt.

    Non-goals:
        - Does NOT retry -- see RetryCoordinator.
        - Does NOT decide whether the plan is due -- see BatchProcessor.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        price_source: PriceSource,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._price_source = price_source
        self._clock = clock or SystemClock()

    def execute(
        self,
        plan: InvestmentPlanInfo,
        target_date: date,
        attempt: int = 0,
    ) -> PlanProcessingResult:
        """Execute ``plan`` for ``target_date``.  ``attempt`` is 0-based."""
        start = time.monotonic()

        with LogContext.bind(plan_id=str(plan.plan_id)):
            logger.info(
                "plan_execution_started",
                extra={
                    "plan_name": plan.name,
                    "symbol": plan.symbol,
                    "amount": plan.amount,
                    "target_date": target_date,
                    "attempt": attempt,
                },
            )

            # Pre-validation short-circuits: no audit row
            try:
                self._validate(plan, target_date)
            except (PlanInactiveError, PlanExpiredError) as exc:
                logger.warning(
                    "plan_execution_rejected",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                return self._failure(plan, exc)

            try:
                price = self._resolve_price(plan.symbol)
                units = compute_units(plan.amount, price)
                transaction_id = self._record_completed(plan, price, units, target_date)
            except SipKernelError as exc:
                return self._fail_with_audit(plan, target_date, exc)
            except Exception as exc:
                logger.exception("plan_execution_unexpected_error")
                return self._fail_with_audit(plan, target_date, exc)

            logger.info(
                "plan_transaction_completed",
                extra={
                    "transaction_id": str(transaction_id),
                    "price": price,
                    "units": units,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )
            return PlanProcessingResult(
                plan_id=plan.plan_id,
                success=True,
                transaction_id=transaction_id,
                amount=plan.amount,
                price=price,
                units=units,
            )

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _validate(self, plan: InvestmentPlanInfo, target_date: date) -> None:
        if not plan.is_active:
            raise PlanInactiveError(plan.plan_id, plan.status.value)

        if plan.end_date is not None and target_date > plan.end_date:
            try:
                with session_scope(self._session_factory) as session:
                    PlanStore(session).mark_completed(plan.plan_id)
            except SQLAlchemyError:
                logger.exception("plan_completion_update_failed")
            raise PlanExpiredError(plan.plan_id, plan.end_date, target_date)

    def _resolve_price(self, symbol: str) -> Decimal:
        try:
            quote = self._price_source.get_price(symbol)
        except Exception as exc:
            raise PriceUnavailableError(symbol, reason=str(exc)) from exc

        if quote is None:
            raise PriceUnavailableError(symbol, reason="no quote")

        try:
            price = Decimal(str(quote.price))
        except (InvalidOperation, ValueError) as exc:
            raise PriceUnavailableError(symbol, reason=str(exc)) from exc

        if not price.is_finite() or price <= 0:
            raise PriceUnavailableError(symbol, price=price)

        logger.debug(
            "price_resolved",
            extra={"symbol": symbol, "price": price, "source": quote.source},
        )
        return price

    def _record_completed(
        self,
        plan: InvestmentPlanInfo,
        price: Decimal,
        units: Decimal,
        target_date: date,
    ):
        try:
            with session_scope(self._session_factory) as session:
                txn = AuditTrailStore(session).append_completed(
                    plan_id=plan.plan_id,
                    amount=plan.amount,
                    price=price,
                    units=units,
                    transaction_date=target_date,
                    created_at=self._clock.now(),
                )
        except SQLAlchemyError as exc:
            raise PersistenceFailureError("append_completed", str(exc)) from exc
        return txn.transaction_id

    # -------------------------------------------------------------------------
    # Failure handling
    # -------------------------------------------------------------------------

    def _fail_with_audit(
        self,
        plan: InvestmentPlanInfo,
        target_date: date,
        exc: Exception,
    ) -> PlanProcessingResult:
        message = str(exc) or type(exc).__name__
        logger.warning(
            "plan_execution_failed",
            extra={
                "error_code": getattr(exc, "code", None),
                "error": message,
            },
        )

        try:
            with session_scope(self._session_factory) as session:
                AuditTrailStore(session).append_failed(
                    plan_id=plan.plan_id,
                    amount=plan.amount,
                    transaction_date=target_date,
                    error_message=message,
                    created_at=self._clock.now(),
                )
        except Exception:
            logger.exception("failed_transaction_record_write_failed")

        return self._failure(plan, exc)

    @staticmethod
    def _failure(plan: InvestmentPlanInfo, exc: Exception) -> PlanProcessingResult:
        return PlanProcessingResult(
            plan_id=plan.plan_id,
            success=False,
            error=str(exc) or type(exc).__name__,
            error_code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
        )
