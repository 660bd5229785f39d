"""Tracking of which orders have already been included in a report."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from reporting.models import GeneratedReport, Order, ReportedMarker
from reporting.store import OrderStore, StoreError
from utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class MarkResult:
    marked: List[int] = field(default_factory=list)
    already_marked: List[int] = field(default_factory=list)
    conflicts: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


def markers_from_reports(reports: Iterable[GeneratedReport]) -> Dict[int, ReportedMarker]:
    """Build the order -> marker map; the earliest report wins on duplicates."""
    markers: Dict[int, ReportedMarker] = {}
    for report in sorted(reports, key=lambda item: (item.generated_at, item.report_id)):
        for order_id in report.order_ids:
            existing = markers.get(order_id)
            if existing is not None:
                LOGGER.warning(
                    "Order %s appears in reports %s and %s; keeping %s",
                    order_id,
                    existing.report_id,
                    report.report_id,
                    existing.report_id,
                )
                continue
            markers[order_id] = ReportedMarker(order_id, report.report_id, report.generated_at)
    return markers


class ReportedSetTracker:
    """Answers "which orders were reported" and records new inclusions."""

    def __init__(self, store: OrderStore) -> None:
        self._store = store

    def reported_markers(self, reports: Optional[Sequence[GeneratedReport]] = None) -> Dict[int, ReportedMarker]:
        if reports is None:
            reports = self._store.list_generated_reports()
        return markers_from_reports(reports)

    def unreported_orders(
        self,
        all_orders: Iterable[Order],
        markers: Optional[Dict[int, ReportedMarker]] = None,
    ) -> List[Order]:
        if markers is None:
            markers = self.reported_markers()
        return [order for order in all_orders if order.order_id not in markers]

    def pending_count(self) -> int:
        return len(self.unreported_orders(self._store.list_orders()))

    def is_reported(self, order_id: int) -> bool:
        return self._store.is_order_reported(order_id)

    def mark_reported(self, order_ids: Iterable[int], report_id: str, included_at: datetime) -> MarkResult:
        result = MarkResult()
        known: Optional[Dict[int, ReportedMarker]] = None
        for order_id in order_ids:
            try:
                newly_marked = self._store.mark_order_reported(order_id, report_id, included_at)
            except StoreError:
                LOGGER.exception("Failed to mark order %s as reported in %s", order_id, report_id)
                result.failed.append(order_id)
                continue
            if newly_marked:
                result.marked.append(order_id)
                continue
            if known is None:
                known = self.reported_markers()
            existing = known.get(order_id)
            if existing is not None and existing.report_id == report_id:
                result.already_marked.append(order_id)
            else:
                LOGGER.error(
                    "Order %s is already marked as reported in %s; refusing to re-attribute it to %s",
                    order_id,
                    existing.report_id if existing else "an unknown report",
                    report_id,
                )
                result.conflicts.append(order_id)
        return result
