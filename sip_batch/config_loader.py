"""
Scheduler configuration files.

Loads a YAML document into a validated ``SchedulerConfig``.  The document
is either a flat mapping of options or has them under a top-level
``scheduler`` key:

    scheduler:
      processing_interval_ms: 86400000
      enableRetry: false
      batch_size: 25

Failure modes:
    - Missing file  -> ``FileNotFoundError`` propagates.
    - Malformed YAML  -> ``yaml.YAMLError`` propagates.
    - Unknown options or invalid values  -> ``ConfigInvalidError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from sip_kernel.exceptions import ConfigInvalidError
from sip_kernel.logging_config import get_logger

from sip_batch.domain.config import SchedulerConfig

logger = get_logger("batch.config_loader")


def load_yaml_file(path: Path | str) -> dict[str, Any]:
    """Load a YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigInvalidError([f"{path}: top level must be a mapping"])
    return data


def parse_scheduler_config(
    data: dict[str, Any],
    base: SchedulerConfig | None = None,
) -> SchedulerConfig:
    """Overlay ``data`` (optionally nested under ``scheduler``) on ``base``."""
    if "scheduler" in data:
        section = data["scheduler"] or {}
        if not isinstance(section, dict):
            raise ConfigInvalidError(["'scheduler' must be a mapping"])
        data = section
    return (base or SchedulerConfig()).merged(data)


def load_scheduler_config(
    path: Path | str,
    base: SchedulerConfig | None = None,
) -> SchedulerConfig:
    config = parse_scheduler_config(load_yaml_file(path), base=base)
    logger.info(
        "scheduler_config_loaded",
        extra={"path": str(path), "config": config.to_dict()},
    )
    return config
