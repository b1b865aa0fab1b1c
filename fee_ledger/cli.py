"""
Operator commands for the fee ledger.

Usage:
    fee-ledger [--config fee_ledger.yaml] [--database-url URL] <command>

Commands:
    init-db                         create the ledger tables
    audit [--invoice ID] [--json]   run the consistency checker
    reconcile --invoice ID --actor ID
                                    rewrite an invoice's cached paid amount
    stats [--from DATE] [--to DATE] confirmed payment totals

Exit codes:
    0  success
    1  ``audit`` found at least one invalid invoice
    2  ledger or configuration error
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from datetime import date
from pathlib import Path
from uuid import UUID

import yaml
from sqlalchemy.exc import ArgumentError

from fee_ledger.config import FeeLedgerConfig, load_config
from fee_ledger.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from fee_ledger.db.types import format_currency
from fee_ledger.domain.clock import SystemClock
from fee_ledger.exceptions import FeeLedgerError
from fee_ledger.logging_config import LogContext, configure_logging, get_logger
from fee_ledger.selectors.payment_selector import PaymentSelector
from fee_ledger.services.activity_recorder import ActivityRecorder
from fee_ledger.services.base import storage_operation
from fee_ledger.services.consistency_checker import ConsistencyChecker
from fee_ledger.services.invoice_ledger import InvoiceLedger

logger = get_logger("cli")

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_ERROR = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fee-ledger",
        description="School fee ledger maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML config file with a top-level 'fee_ledger' mapping.",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (overrides config and FEE_LEDGER_DATABASE_URL).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the ledger tables.")

    audit = sub.add_parser("audit", help="Check invoices against their confirmed payments.")
    audit.add_argument("--invoice", type=UUID, default=None, help="Audit a single invoice.")
    audit.add_argument("--limit", type=int, default=None, help="Audit at most N invoices.")
    audit.add_argument("--json", action="store_true", help="Print one JSON report per line.")

    reconcile = sub.add_parser(
        "reconcile", help="Rewrite an invoice's paid amount from confirmed payments."
    )
    reconcile.add_argument("--invoice", type=UUID, required=True)
    reconcile.add_argument("--actor", type=UUID, required=True, help="Operator user id.")

    stats = sub.add_parser("stats", help="Confirmed payment totals.")
    stats.add_argument("--from", dest="date_from", type=date.fromisoformat, default=None)
    stats.add_argument("--to", dest="date_to", type=date.fromisoformat, default=None)

    return parser


def _cmd_audit(session, config: FeeLedgerConfig, args: argparse.Namespace) -> int:
    checker = ConsistencyChecker(session, config=config)
    if args.invoice is not None:
        reports = [checker.validate_invoice_payments(args.invoice)]
    else:
        reports = checker.audit_all(limit=args.limit)

    for report in reports:
        if args.json:
            payload = report.to_dict()
            payload["has_drift"] = report.has_drift
            print(json.dumps(payload))
            continue
        state = "OK" if report.is_valid else "INVALID"
        drift = " (paid amount drift)" if report.has_drift else ""
        print(f"{report.invoice_id} {state}{drift}")
        for error in report.errors:
            print(f"  - {error}")

    invalid = sum(1 for r in reports if not r.is_valid)
    if not args.json:
        print(f"{len(reports)} invoice(s) checked, {invalid} invalid")
    return EXIT_INVALID if invalid else EXIT_OK


def _cmd_reconcile(session, config: FeeLedgerConfig, args: argparse.Namespace) -> int:
    clock = SystemClock()
    ledger = InvoiceLedger(session, clock=clock, lock_timeout=config.lock_timeout_seconds)
    result = ledger.reconcile_invoice(args.invoice, actor_id=args.actor)
    if result.changed:
        ActivityRecorder(session, clock=clock, config=config).record_invoice_reconciled(
            result, actor_id=args.actor
        )
        with storage_operation("record activity"):
            session.commit()
        print(
            f"{result.invoice_id}: paid amount "
            f"{format_currency(result.previous_paid_amount, config.currency_symbol)} -> "
            f"{format_currency(result.paid_amount, config.currency_symbol)}, "
            f"status {result.previous_status.value} -> {result.status.value}"
        )
    else:
        print(f"{result.invoice_id}: already consistent")
    return EXIT_OK


def _cmd_stats(session, config: FeeLedgerConfig, args: argparse.Namespace) -> int:
    stats = PaymentSelector(session).statistics(
        date_from=args.date_from,
        date_to=args.date_to,
        today=SystemClock().today(),
    )
    symbol = config.currency_symbol
    print(f"Total: {format_currency(stats.total_amount, symbol)} ({stats.total_count} payments)")
    print(f"Today: {format_currency(stats.today_amount, symbol)} ({stats.today_count} payments)")
    for method, amount in sorted(stats.by_method.items(), key=lambda item: item[0].value):
        print(f"  {method.value}: {format_currency(amount, symbol)}")
    return EXIT_OK


_COMMANDS = {
    "audit": _cmd_audit,
    "reconcile": _cmd_reconcile,
    "stats": _cmd_stats,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return EXIT_ERROR

    configure_logging(level=config.log_level.upper())
    database_url = args.database_url or config.database_url

    try:
        init_engine_from_url(database_url, echo=config.echo_sql)
        if args.command == "init-db":
            with storage_operation("create tables"):
                create_tables()
            print("Tables created")
            return EXIT_OK

        session = get_session()
        try:
            with LogContext.bind(correlation_id=f"cli-{args.command}"):
                return _COMMANDS[args.command](session, config, args)
        finally:
            session.close()
    except FeeLedgerError as e:
        logger.error("cli_command_failed", extra={"command": args.command, "code": e.code})
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    except ArgumentError as e:
        print(f"ERROR: Invalid database URL: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())
