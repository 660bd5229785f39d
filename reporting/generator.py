"""Shared report generation: candidate selection, persistence and marking.

Every entry point that creates reports (the poller, the manual trigger and the
historical backfill) goes through one :class:`ReportGenerator`. Its lock
serializes the read-unreported, build, persist and mark sequence so two
generations in this process can never include the same order.
"""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from reporting.aggregators import build_report_views
from reporting.models import GeneratedReport, Order, ReportKind, ReportOrigin, new_report_id, utc_now
from reporting.store import OrderStore, StoreError
from reporting.tracker import ReportedSetTracker
from utils.logging import get_logger
from utils.time_windows import PeriodCalculator, Window

LOGGER = get_logger(__name__)


class ReportGenerationError(RuntimeError):
    """Raised when a report could not be built or persisted."""


class ReportGenerator:
    def __init__(
        self,
        store: OrderStore,
        calculator: PeriodCalculator,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.calculator = calculator
        self.tracker = ReportedSetTracker(store)
        self._clock = clock
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def now(self) -> datetime:
        return self.calculator.normalise(self._clock())

    def unreported_orders(self) -> List[Order]:
        """Fetch all orders and subtract every order already in a report."""
        orders = self.store.list_orders()
        return self.tracker.unreported_orders(orders)

    def _still_unreported(self, orders: Sequence[Order]) -> List[Order]:
        fresh = []
        for order in orders:
            if self.store.is_order_reported(order.order_id):
                LOGGER.warning("Order %s was reported by another writer; dropping it", order.order_id)
                continue
            fresh.append(order)
        return fresh

    def create_report(
        self,
        orders: Sequence[Order],
        *,
        kind: ReportKind,
        origin: ReportOrigin,
        period_start: datetime,
        period_end: datetime,
        now: Optional[datetime] = None,
    ) -> Optional[GeneratedReport]:
        """Persist a report for ``orders`` and mark them; ``None`` if nothing is left to report."""
        with self._lock:
            now = now or self.now()
            try:
                candidates = self._still_unreported(orders)
            except StoreError as exc:
                raise ReportGenerationError(f"Unable to verify reported state: {exc}") from exc
            if not candidates:
                LOGGER.info("No unreported orders for %s - %s; skipping report", period_start, period_end)
                return None

            report = GeneratedReport(
                report_id=new_report_id(origin, now),
                kind=kind,
                generated_at=now,
                period_start=period_start,
                period_end=period_end,
                order_ids=tuple(sorted(order.order_id for order in candidates)),
                views=build_report_views(candidates, now),
            )
            try:
                saved = self.store.persist_generated_report(report)
            except StoreError as exc:
                raise ReportGenerationError(f"Unable to persist report {report.report_id}: {exc}") from exc

            outcome = self.tracker.mark_reported(saved.order_ids, saved.report_id, now)
            if outcome.conflicts or outcome.failed:
                LOGGER.error(
                    "Report %s persisted with marking problems (conflicts=%s, failed=%s)",
                    saved.report_id,
                    outcome.conflicts,
                    outcome.failed,
                )
            LOGGER.info(
                "Generated %s report %s with %s orders (%s - %s)",
                saved.kind.value,
                saved.report_id,
                len(saved.order_ids),
                saved.period_start.isoformat(),
                saved.period_end.isoformat(),
            )
            return saved

    def generate_for_window(
        self,
        window: Window,
        *,
        origin: ReportOrigin = ReportOrigin.AUTOMATIC,
        unreported: Optional[Sequence[Order]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[GeneratedReport]:
        """Report the unreported orders whose timestamp falls inside ``window``."""
        with self._lock:
            if unreported is None:
                try:
                    unreported = self.unreported_orders()
                except StoreError as exc:
                    raise ReportGenerationError(f"Unable to load unreported orders: {exc}") from exc
            in_window = [order for order in unreported if window.contains(order.ordered_at)]
            if not in_window:
                return None
            return self.create_report(
                in_window,
                kind=ReportKind.AUTOMATIC,
                origin=origin,
                period_start=window.start,
                period_end=window.end,
                now=now,
            )

    def generate_manual(self, now: Optional[datetime] = None) -> Optional[GeneratedReport]:
        """Report every unreported order up to ``now`` as one manual report."""
        with self._lock:
            now = now or self.now()
            try:
                unreported = self.unreported_orders()
            except StoreError as exc:
                raise ReportGenerationError(f"Unable to load unreported orders: {exc}") from exc
            candidates = [order for order in unreported if order.ordered_at <= now]
            skipped = len(unreported) - len(candidates)
            if skipped:
                LOGGER.warning("Ignoring %s unreported orders with timestamps after %s", skipped, now.isoformat())
            if not candidates:
                LOGGER.info("No unreported orders for a manual report")
                return None
            return self.create_report(
                candidates,
                kind=ReportKind.MANUAL,
                origin=ReportOrigin.MANUAL,
                period_start=min(order.ordered_at for order in candidates),
                period_end=now,
                now=now,
            )
