"""
Pytest fixtures for the SIP scheduler test suite.

Provides:
- Structured logging configuration and capture
- A temp-file SQLite database with the real ORM models (file-backed so the
  batch worker threads each get their own connection)
- A deterministic clock, a static price table and a recording sleeper
- Plan / transaction factories
"""

import json
import logging
import threading
from datetime import date, datetime
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from sip_kernel.db.engine import build_engine, create_tables
from sip_kernel.domain.clock import DeterministicClock
from sip_kernel.domain.dtos import (
    InvestmentPlanInfo,
    PlanFrequency,
    PlanStatus,
    TransactionStatus,
)
from sip_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from sip_kernel.models.investment_plan import InvestmentPlan
from sip_kernel.models.plan_transaction import PlanTransaction
from sip_kernel.services.price_source import StaticPriceSource

TEST_ACCOUNT_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture sip_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, executor, plan):
            executor.execute(plan, date(2024, 2, 1))
            logs = captured_logs()
            assert any(r["message"] == "plan_transaction_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("sip_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'sip.db'}")
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def clock():
    # Use naive datetimes for SQLite compatibility (SQLite strips tzinfo)
    return DeterministicClock(fixed_time=datetime(2024, 2, 1, 9, 0, 0))


@pytest.fixture
def prices():
    return StaticPriceSource({
        "NIFTYBEES": Decimal("245.00"),
        "GOLDBEES": Decimal("52.40"),
    })


class RecordingSleeper:
    """Sleeper that records requested delays instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []
        self._lock = threading.Lock()

    def __call__(self, seconds: float) -> None:
        with self._lock:
            self.calls.append(seconds)


@pytest.fixture
def sleeper():
    return RecordingSleeper()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_plan(session_factory):
    """Persist a plan and return its DTO."""

    def _make_plan(
        name: str = "Index SIP",
        symbol: str = "NIFTYBEES",
        amount: Decimal | str = "10000",
        frequency: PlanFrequency = PlanFrequency.MONTHLY,
        start_date: date = date(2024, 1, 1),
        end_date: date | None = None,
        status: PlanStatus = PlanStatus.ACTIVE,
    ) -> InvestmentPlanInfo:
        dto = InvestmentPlanInfo(
            plan_id=uuid4(),
            name=name,
            symbol=symbol,
            amount=Decimal(str(amount)),
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            status=status,
            account_id=TEST_ACCOUNT_ID,
        )
        session = session_factory()
        try:
            session.add(InvestmentPlan.from_dto(dto))
            session.commit()
        finally:
            session.close()
        return dto

    return _make_plan


@pytest.fixture
def add_transaction(session_factory):
    """Persist a raw transaction row, bypassing the executor."""

    def _add_transaction(
        plan: InvestmentPlanInfo,
        transaction_date: date,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        price: Decimal | str = "250",
        created_at: datetime | None = None,
        error_message: str | None = None,
    ) -> None:
        price = Decimal(str(price))
        if status == TransactionStatus.COMPLETED:
            units = (plan.amount / price).quantize(Decimal("0.000000001"))
        else:
            price = Decimal("0")
            units = Decimal("0")
            error_message = error_message or "Invalid price"
        session = session_factory()
        try:
            session.add(PlanTransaction(
                plan_id=plan.plan_id,
                amount=plan.amount,
                price=price,
                units=units,
                transaction_date=transaction_date,
                status=status.value,
                error_message=error_message,
                created_at=created_at or datetime(2024, 1, 1, 9, 0, 0),
            ))
            session.commit()
        finally:
            session.close()

    return _add_transaction


@pytest.fixture
def plan_status(session_factory):
    """Read a plan's current status from the database."""

    def _plan_status(plan_id) -> PlanStatus:
        session = session_factory()
        try:
            return PlanStatus(session.get(InvestmentPlan, plan_id).status)
        finally:
            session.close()

    return _plan_status


@pytest.fixture
def transaction_rows(session_factory):
    """All transaction rows (optionally for one plan), oldest first."""

    def _transaction_rows(plan_id=None) -> list[PlanTransaction]:
        session = session_factory()
        try:
            query = session.query(PlanTransaction)
            if plan_id is not None:
                query = query.filter(PlanTransaction.plan_id == plan_id)
            return query.order_by(
                PlanTransaction.transaction_date, PlanTransaction.created_at,
            ).all()
        finally:
            session.close()

    return _transaction_rows
