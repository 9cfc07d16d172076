"""
SipOrchestrator -- composition root for the SIP scheduler.

Contract:
    Wires the session factory, clock and price source into the executor,
    retry coordinator, batch processor, failed-transaction retrier,
    cleanup job and supervisor.  Single place where every scheduler
    dependency is composed.

Architecture: sip_batch (top-level).  Nothing in sip_kernel imports from
    sip_batch.

Non-goals:
    - Does NOT start the supervisor automatically -- caller decides.
"""

from __future__ import annotations

import time
from typing import Callable

from sqlalchemy.orm import Session, sessionmaker

from sip_kernel.db.engine import build_engine, create_tables
from sip_kernel.domain.clock import Clock, SystemClock
from sip_kernel.logging_config import get_logger
from sip_kernel.services.price_source import PriceSource

from sip_batch.domain.config import SchedulerConfig
from sip_batch.domain.retry_policy import RetryPolicy
from sip_batch.services.batch_processor import BatchProcessor
from sip_batch.services.cleanup import CleanupJob
from sip_batch.services.executor import TransactionExecutor
from sip_batch.services.failed_retry import FailedTransactionRetrier
from sip_batch.services.retry import RetryCoordinator
from sip_batch.services.supervisor import SchedulerJobs, SchedulerSupervisor

logger = get_logger("batch.orchestrator")


class SipOrchestrator:
    """DI container for the scheduler core.

    ``sleeper`` is shared by the retry coordinator and the batch
    processor; tests pass a no-op.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        price_source: PriceSource,
        clock: Clock | None = None,
        config: SchedulerConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._price_source = price_source
        self._clock = clock or SystemClock()
        self._config = config or SchedulerConfig()
        self._retry_policy = retry_policy
        self._sleep = sleeper
        self._executor = TransactionExecutor(
            session_factory=session_factory,
            price_source=price_source,
            clock=self._clock,
        )
        self._supervisor: SchedulerSupervisor | None = None

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_url(
        cls,
        database_url: str,
        price_source: PriceSource,
        clock: Clock | None = None,
        config: SchedulerConfig | None = None,
        create_schema: bool = False,
        echo: bool = False,
    ) -> SipOrchestrator:
        """Build an orchestrator with its own engine for ``database_url``.

        Args:
            create_schema: Create the plan and transaction tables first.
        """
        engine = build_engine(database_url, echo=echo)
        if create_schema:
            create_tables(engine)
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        logger.info(
            "orchestrator_created",
            extra={"dialect": engine.dialect.name},
        )
        return cls(
            session_factory=factory,
            price_source=price_source,
            clock=clock,
            config=config,
        )

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def create_retry_coordinator(
        self, config: SchedulerConfig | None = None,
    ) -> RetryCoordinator:
        config = config or self._config
        policy = self._retry_policy or RetryPolicy.from_config(config)
        return RetryCoordinator(self._executor, policy, sleeper=self._sleep)

    def create_batch_processor(
        self, config: SchedulerConfig | None = None,
    ) -> BatchProcessor:
        config = config or self._config
        return BatchProcessor(
            session_factory=self._session_factory,
            retry_coordinator=self.create_retry_coordinator(config),
            clock=self._clock,
            batch_size=config.batch_size,
            inter_batch_delay_seconds=config.inter_batch_delay_ms / 1000,
            sleeper=self._sleep,
        )

    def create_jobs(self, config: SchedulerConfig | None = None) -> SchedulerJobs:
        """Job bodies for ``config``; the supervisor rebuilds them on update."""
        config = config or self._config
        processor = self.create_batch_processor(config)
        return SchedulerJobs(
            batch_processor=processor,
            failed_retrier=FailedTransactionRetrier(
                session_factory=self._session_factory,
                batch_processor=processor,
                clock=self._clock,
                window_ms=config.failed_retry_window_ms,
            ),
            cleanup_job=CleanupJob(
                session_factory=self._session_factory,
                clock=self._clock,
                retention_ms=config.failed_record_retention_ms,
            ),
        )

    @property
    def supervisor(self) -> SchedulerSupervisor:
        """The supervisor of this orchestrator, created on first access."""
        if self._supervisor is None:
            self._supervisor = SchedulerSupervisor(
                jobs_factory=self.create_jobs,
                clock=self._clock,
                config=self._config,
            )
        return self._supervisor

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def executor(self) -> TransactionExecutor:
        return self._executor

    @property
    def session_factory(self) -> Callable[[], Session]:
        return self._session_factory

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> SchedulerConfig:
        return self._config
