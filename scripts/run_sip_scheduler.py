#!/usr/bin/env python3
"""
Run or drive the SIP scheduler from the command line.

Prices come from ``--price SYMBOL=PRICE`` pairs (a static price table).

Usage:
    python3 scripts/run_sip_scheduler.py [options] <command>

Examples:
    # Run the periodic jobs until interrupted (startup check after 5s)
    python3 scripts/run_sip_scheduler.py --price NIFTYBEES=245.10 start

    # One-shot processing for a given date
    python3 scripts/run_sip_scheduler.py --price NIFTYBEES=245.10 process --date 2024-02-01

    # Retry recent failures, purge stale failures
    python3 scripts/run_sip_scheduler.py --price NIFTYBEES=245.10 retry
    python3 scripts/run_sip_scheduler.py cleanup

    # Effective config and processing statistics
    python3 scripts/run_sip_scheduler.py --config scheduler.yaml status
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys
import threading
from dataclasses import asdict, is_dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///sip_scheduler.db"


def _parse_price(value: str) -> tuple[str, Decimal]:
    symbol, sep, raw = value.partition("=")
    if not sep or not symbol:
        raise argparse.ArgumentTypeError(f"expected SYMBOL=PRICE, got {value!r}")
    try:
        return symbol.strip(), Decimal(raw.strip())
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid price in {value!r}") from None


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Recurring investment plan scheduler.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--database-url",
        default=os.environ.get("DATABASE_URL", DB_URL),
        help=f"Database URL (default: DATABASE_URL env or {DB_URL!r}).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML file with scheduler options.",
    )
    parser.add_argument(
        "--price",
        action="append",
        type=_parse_price,
        default=[],
        metavar="SYMBOL=PRICE",
        help="Static price for a symbol (repeatable).",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create the plan and transaction tables if missing.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO).",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    start = sub.add_parser("start", help="Run the periodic jobs until interrupted.")
    start.add_argument(
        "--no-startup-check",
        action="store_true",
        help="Skip the one-shot processing check after startup.",
    )
    process = sub.add_parser("process", help="Process due plans once.")
    process.add_argument(
        "--date",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Target date (YYYY-MM-DD). Default: today.",
    )
    sub.add_parser("retry", help="Retry recently failed transactions once.")
    sub.add_parser("cleanup", help="Delete stale failed transactions once.")
    sub.add_parser("status", help="Print config and processing statistics.")
    return parser.parse_args()


def _print(value) -> None:
    if is_dataclass(value):
        value = asdict(value)
    print(json.dumps(value, indent=2, default=str))


def main() -> int:
    args = _parse_args()

    # Lazy imports so we fail fast on args first
    import logging

    from sip_kernel.db.engine import session_scope
    from sip_kernel.exceptions import ConfigInvalidError
    from sip_kernel.logging_config import configure_logging
    from sip_kernel.services.audit_trail_store import AuditTrailStore
    from sip_kernel.services.price_source import StaticPriceSource

    from sip_batch.config_loader import load_scheduler_config
    from sip_batch.domain.config import SchedulerConfig
    from sip_batch.orchestrator import SipOrchestrator

    configure_logging(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        config = (
            load_scheduler_config(args.config) if args.config else SchedulerConfig()
        )
    except (FileNotFoundError, ConfigInvalidError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    orchestrator = SipOrchestrator.from_url(
        args.database_url,
        price_source=StaticPriceSource(dict(args.price), source="cli"),
        config=config,
        create_schema=args.create_schema,
    )
    supervisor = orchestrator.supervisor

    if args.command == "process":
        outcome = supervisor.manual_process(args.date)
    elif args.command == "retry":
        outcome = supervisor.manual_retry()
    elif args.command == "cleanup":
        outcome = supervisor.manual_cleanup()
    elif args.command == "status":
        with session_scope(orchestrator.session_factory) as session:
            stats = AuditTrailStore(session).processing_stats()
        _print({"config": config.to_camel_dict(), "stats": asdict(stats)})
        return 0
    else:
        return _run_forever(supervisor, config, startup_check=not args.no_startup_check)

    _print(outcome)
    return 0 if outcome.success else 1


def _run_forever(supervisor, config, startup_check: bool) -> int:
    stop = threading.Event()

    def _handle_signal(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    if startup_check:
        supervisor.initialize(config)
    else:
        supervisor.start(config)
    _print(supervisor.status())

    stop.wait()
    supervisor.shutdown(timeout=30.0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
