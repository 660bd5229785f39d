"""Retroactive generation of one report per past week with unreported orders."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from reporting.generator import ReportGenerator
from reporting.models import BackfillResult, GeneratedReport, ReportOrigin
from reporting.store import StoreError
from utils.logging import get_logger

LOGGER = get_logger(__name__)


class HistoricalBackfill:
    """Walk weekly windows over every unreported order, oldest first.

    Safe to re-run: orders covered by any earlier report are excluded before
    the walk starts, so a second run after a partial failure only fills the
    remaining gaps.
    """

    def __init__(self, generator: ReportGenerator) -> None:
        self._generator = generator

    def run(self, now: Optional[datetime] = None) -> BackfillResult:
        generator = self._generator
        errors: List[str] = []
        reports: List[GeneratedReport] = []
        with generator.lock:
            now = now or generator.now()
            try:
                orders = generator.store.list_orders()
                existing = generator.store.list_generated_reports()
            except StoreError as exc:
                LOGGER.exception("Historical backfill could not load orders or reports")
                return BackfillResult(success=False, reports_generated=0, errors=[f"General error: {exc}"])

            markers = generator.tracker.reported_markers(existing)
            unreported = sorted(
                generator.tracker.unreported_orders(orders, markers),
                key=lambda order: (order.ordered_at, order.order_id),
            )
            LOGGER.info(
                "Historical backfill: %s orders, %s already reported, %s pending",
                len(orders),
                len(markers),
                len(unreported),
            )
            if not unreported:
                return BackfillResult(success=True, reports_generated=0, errors=[])

            windows = list(
                generator.calculator.iter_windows(unreported[0].ordered_at, unreported[-1].ordered_at)
            )
            for index, window in enumerate(windows, start=1):
                in_window = [order for order in unreported if window.contains(order.ordered_at)]
                if not in_window:
                    continue
                LOGGER.info(
                    "Backfilling window %s/%s (%s - %s) with %s orders",
                    index,
                    len(windows),
                    window.start.isoformat(),
                    window.end.isoformat(),
                    len(in_window),
                )
                try:
                    report = generator.generate_for_window(
                        window,
                        origin=ReportOrigin.HISTORICAL,
                        unreported=in_window,
                        now=now,
                    )
                except Exception as exc:  # noqa: BLE001
                    message = f"Error generating report for week starting {window.start.isoformat()}: {exc}"
                    LOGGER.error(message)
                    errors.append(message)
                    continue
                if report is not None:
                    reports.append(report)

        LOGGER.info("Historical backfill finished: %s reports, %s errors", len(reports), len(errors))
        return BackfillResult(
            success=not errors,
            reports_generated=len(reports),
            errors=errors,
            reports=reports,
        )
