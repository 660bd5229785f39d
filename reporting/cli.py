"""Command-line entry point for the weekly report scheduler.

Usage::

    python -m reporting.cli run            # poll until interrupted
    python -m reporting.cli manual         # one manual report now
    python -m reporting.cli backfill       # one report per past week
    python -m reporting.cli status
    python -m reporting.cli export REPORT_ID --view productos_por_proveedor --output out.xlsx
"""
from __future__ import annotations

import argparse
import json
import sys
import threading
from pathlib import Path
from typing import Optional, Sequence

from reporting.excel_export import EXPORT_VIEWS, export_filename, export_report
from reporting.factory import build_scheduler
from reporting.scheduler import REPORT_GENERATED
from utils.config import load_settings
from utils.logging import apply_logging_settings, get_logger

logger = get_logger(__name__)


def _print(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Weekly order report scheduler")
    parser.add_argument("--config", default=None, help="Path to settings YAML")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="Start the poller and block until interrupted")
    sub.add_parser("manual", help="Generate a manual report with every pending order")
    sub.add_parser("backfill", help="Generate one report per past week with pending orders")
    sub.add_parser("status", help="Show scheduler status")
    export = sub.add_parser("export", help="Export a stored report to XLSX")
    export.add_argument("report_id")
    export.add_argument("--view", choices=EXPORT_VIEWS, default="all")
    export.add_argument("--output", type=Path, default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)
    apply_logging_settings(settings)
    scheduler = build_scheduler(settings)

    if args.command == "run":
        scheduler.add_listener(
            REPORT_GENERATED,
            lambda report: logger.info("Report %s ready (%s orders)", report.report_id, len(report.order_ids)),
        )
        scheduler.start()
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            logger.info("Interrupted; stopping scheduler")
        finally:
            scheduler.stop(timeout=5)
        return 0

    if args.command == "manual":
        report = scheduler.generate_manual_report()
        if report is None:
            logger.info("No report generated")
            return 0
        _print({"report_id": report.report_id, "orders": list(report.order_ids)})
        return 0

    if args.command == "backfill":
        result = scheduler.run_historical_backfill()
        _print(result.to_record())
        return 0 if result.success else 1

    if args.command == "status":
        scheduler.refresh_pending()
        _print(scheduler.get_status().to_record())
        return 0

    reports = {report.report_id: report for report in scheduler.generator.store.list_generated_reports()}
    report = reports.get(args.report_id)
    if report is None:
        logger.error("Report %s not found", args.report_id)
        return 2
    output = args.output or Path(export_filename(report, args.view))
    export_report(report, args.view, output)
    logger.info("Wrote %s", output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
