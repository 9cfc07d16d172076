"""CleanupJob -- purges FAILED audit rows older than the retention window."""

from __future__ import annotations

from datetime import timedelta
from typing import Callable

from sqlalchemy.orm import Session

from sip_kernel.db.engine import session_scope
from sip_kernel.domain.clock import Clock, SystemClock
from sip_kernel.logging_config import get_logger
from sip_kernel.services.audit_trail_store import AuditTrailStore

from sip_batch.domain.config import DAY_MS

logger = get_logger("batch.cleanup")


class CleanupJob:
    """Deletes FAILED rows with ``created_at < now - retention``.

    COMPLETED rows are never deleted.  Running twice with the same clock
    deletes nothing the second time.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        retention_ms: int = 30 * DAY_MS,
    ):
        if retention_ms <= 0:
            raise ValueError(f"retention_ms must be positive, got {retention_ms}")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._retention_ms = retention_ms

    def run(self, retention_ms: int | None = None) -> int:
        """Returns the number of rows deleted."""
        retention = retention_ms if retention_ms is not None else self._retention_ms
        cutoff = self._clock.now() - timedelta(milliseconds=retention)

        with session_scope(self._session_factory) as session:
            deleted = AuditTrailStore(session).delete_failed_before(cutoff)

        logger.info(
            "cleanup_completed",
            extra={"retention_ms": retention, "deleted": deleted},
        )
        return deleted
