"""
SchedulerConfig -- in-memory configuration of the scheduler supervisor.

Held by the supervisor, replaced on ``start`` (merged over defaults) and
merged on ``update_config``.  Never persisted: a restarted process begins
from defaults unless the caller supplies a config again.

Option names are snake_case; the camelCase names of the control surface
(``processingIntervalMs``, ``enableRetry``, ...) are accepted by
``from_mapping`` and ``merged``.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping

from sip_kernel.exceptions import ConfigInvalidError

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

_CAMEL_ALIASES: dict[str, str] = {
    "processingIntervalMs": "processing_interval_ms",
    "retryIntervalMs": "retry_interval_ms",
    "cleanupIntervalMs": "cleanup_interval_ms",
    "enableProcessing": "enable_processing",
    "enableRetry": "enable_retry",
    "enableCleanup": "enable_cleanup",
    "batchSize": "batch_size",
    "interBatchDelayMs": "inter_batch_delay_ms",
    "maxRetryAttempts": "max_retry_attempts",
    "retryDelayMs": "retry_delay_ms",
    "failedRecordRetentionMs": "failed_record_retention_ms",
    "failedRetryWindowMs": "failed_retry_window_ms",
    "startupCheckDelayMs": "startup_check_delay_ms",
}

_BOOL_FIELDS = frozenset({"enable_processing", "enable_retry", "enable_cleanup"})


@dataclass(frozen=True)
class SchedulerConfig:
    """Intervals, enable flags and processing knobs for the three jobs."""

    processing_interval_ms: int = DAY_MS
    retry_interval_ms: int = 4 * HOUR_MS
    cleanup_interval_ms: int = 7 * DAY_MS
    enable_processing: bool = True
    enable_retry: bool = True
    enable_cleanup: bool = True
    batch_size: int = 10
    inter_batch_delay_ms: int = 1000
    max_retry_attempts: int = 3
    retry_delay_ms: int = 5000
    failed_record_retention_ms: int = 30 * DAY_MS
    failed_retry_window_ms: int = DAY_MS
    startup_check_delay_ms: int = 5000

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any] | None) -> SchedulerConfig:
        """Defaults overlaid with ``values``; raises ConfigInvalidError."""
        return cls().merged(values)

    def merged(self, overrides: Mapping[str, Any] | SchedulerConfig | None) -> SchedulerConfig:
        """Return a new config with ``overrides`` applied, validated.

        Raises:
            ConfigInvalidError: On unknown option names, wrong types or
                values that fail ``validate``.
        """
        if overrides is None:
            overrides = {}
        if isinstance(overrides, SchedulerConfig):
            overrides = dataclasses.asdict(overrides)

        known = {f.name for f in dataclasses.fields(self)}
        changes: dict[str, Any] = {}
        errors: list[str] = []
        for key, value in overrides.items():
            name = _CAMEL_ALIASES.get(key, key)
            if name not in known:
                errors.append(f"unknown option '{key}'")
                continue
            if value is None:
                continue
            if name in _BOOL_FIELDS:
                if not isinstance(value, bool):
                    errors.append(f"{key} must be a boolean")
                    continue
            elif isinstance(value, bool) or not isinstance(value, (int, float)):
                errors.append(f"{key} must be a number")
                continue
            else:
                value = int(value)
            changes[name] = value

        if errors:
            raise ConfigInvalidError(errors)

        config = dataclasses.replace(self, **changes)
        config.validate()
        return config

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        for name in ("processing_interval_ms", "retry_interval_ms", "cleanup_interval_ms"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        if self.batch_size < 1:
            errors.append("batch_size must be at least 1")
        if self.max_retry_attempts < 1:
            errors.append("max_retry_attempts must be at least 1")
        for name in ("inter_batch_delay_ms", "retry_delay_ms", "startup_check_delay_ms"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative")
        for name in ("failed_record_retention_ms", "failed_retry_window_ms"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        return errors

    def validate(self) -> None:
        """
        Raises:
            ConfigInvalidError: Listing every failed rule.
        """
        errors = self.validation_errors()
        if errors:
            raise ConfigInvalidError(errors)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def to_camel_dict(self) -> dict[str, Any]:
        """Option names as used by the control surface."""
        reverse = {v: k for k, v in _CAMEL_ALIASES.items()}
        return {reverse[k]: v for k, v in dataclasses.asdict(self).items()}
