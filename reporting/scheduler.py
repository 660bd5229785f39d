"""Recurring weekly report poller.

The hosting application constructs one :class:`ReportScheduler` and passes it
to whatever needs to start, stop or observe it. While running, a daemon thread
evaluates :meth:`ReportScheduler.tick` every ``poll_interval_seconds``. A tick
generates an automatic report once the weekly anchor has passed, covering the
window that just closed.
"""
from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from reporting.backfill import HistoricalBackfill
from reporting.generator import ReportGenerationError, ReportGenerator
from reporting.models import BackfillResult, GeneratedReport, ReportOrigin, SchedulerStatus
from reporting.store import OrderStore, StoreError
from utils.config import SchedulerSettings
from utils.logging import get_logger
from utils.time_windows import WEEK, PeriodCalculator, Window

LOGGER = get_logger(__name__)

REPORT_GENERATED = "report_generated"
STATUS_UPDATED = "status_updated"
EVENTS = (REPORT_GENERATED, STATUS_UPDATED)

Listener = Callable[[Any], None]


class ReportScheduler:
    """Poller with ``stopped``/``running`` states and listener notifications.

    The first tick of a fresh instance is always due: it catches up on the most
    recently closed window even if no anchor was crossed while running. Orders
    already covered by a persisted report are never picked up again.
    """

    def __init__(
        self,
        generator: ReportGenerator,
        *,
        poll_interval_seconds: float = 60.0,
    ) -> None:
        self._generator = generator
        self._calculator = generator.calculator
        self._backfill = HistoricalBackfill(generator)
        self._interval = poll_interval_seconds
        self._state_lock = threading.Lock()
        self._listener_lock = threading.Lock()
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._is_running = False
        self._last_check: Optional[datetime] = None
        self._next_report_time: Optional[datetime] = None
        self._pending_orders_count = 0
        self._last_fired_anchor: Optional[datetime] = None

    @classmethod
    def from_settings(cls, store: OrderStore, settings: Mapping[str, Any]) -> "ReportScheduler":
        scheduler_settings = SchedulerSettings.from_settings(settings)
        generator = ReportGenerator(store, PeriodCalculator.from_settings(scheduler_settings))
        return cls(generator, poll_interval_seconds=scheduler_settings.poll_interval_seconds)

    @property
    def generator(self) -> ReportGenerator:
        return self._generator

    @property
    def is_running(self) -> bool:
        return self._is_running

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_listener(self, event: str, callback: Listener) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown scheduler event: {event}")
        with self._listener_lock:
            self._listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Listener) -> None:
        with self._listener_lock:
            if callback in self._listeners.get(event, []):
                self._listeners[event].remove(callback)

    def _emit(self, event: str, payload: Any) -> None:
        with self._listener_lock:
            callbacks = list(self._listeners.get(event, []))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Listener for %s failed", event)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        with self._state_lock:
            if self._is_running:
                LOGGER.info("Report scheduler is already running")
                return
            self._is_running = True
            self._next_report_time = self._calculator.next_anchor_after(self._generator.now())
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="report-scheduler",
                daemon=True,
            )
            self._thread.start()
        LOGGER.info(
            "Report scheduler started (interval=%ss, next report at %s)",
            self._interval,
            self._next_report_time.isoformat(),
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel the timer. A tick already in progress runs to completion."""
        with self._state_lock:
            thread = self._thread
            if self._stop_event is not None:
                self._stop_event.set()
            self._stop_event = None
            self._thread = None
            was_running = self._is_running
            self._is_running = False
        if timeout is not None and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        if was_running:
            LOGGER.info("Report scheduler stopped")
            self._emit(STATUS_UPDATED, self.get_status())

    def _run(self, stop_event: threading.Event) -> None:
        self.tick()
        while not stop_event.wait(self._interval):
            self.tick()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def _is_due(self, anchor: datetime) -> bool:
        return self._last_fired_anchor is None or anchor > self._last_fired_anchor

    def tick(self, now: Optional[datetime] = None) -> Optional[GeneratedReport]:
        """Run one evaluation. Never raises; failures are logged and retried next tick."""
        try:
            now = self._calculator.normalise(now) if now is not None else self._generator.now()
            self._last_check = now
            self._pending_orders_count = self._generator.tracker.pending_count()

            report: Optional[GeneratedReport] = None
            anchor = self._calculator.anchor_on_or_before(now)
            if self._is_due(anchor):
                closed_window = Window(anchor - WEEK, anchor)
                LOGGER.info(
                    "Anchor %s has passed; checking window starting %s",
                    anchor.isoformat(),
                    closed_window.start.isoformat(),
                )
                report = self._generator.generate_for_window(closed_window, origin=ReportOrigin.AUTOMATIC, now=now)
                self._last_fired_anchor = anchor
                self._next_report_time = self._calculator.next_anchor_after(now)
                if report is not None:
                    self._pending_orders_count = self._generator.tracker.pending_count()
                    self._emit(REPORT_GENERATED, report)
                else:
                    LOGGER.info("No automatic report generated (no new orders in the closed window)")

            self._emit(STATUS_UPDATED, self.get_status(now))
            return report
        except Exception:  # noqa: BLE001
            LOGGER.exception("Scheduled report check failed")
            return None

    def get_status(self, now: Optional[datetime] = None) -> SchedulerStatus:
        now = self._calculator.normalise(now) if now is not None else self._generator.now()
        next_report_time = self._next_report_time or self._calculator.next_anchor_after(now)
        return SchedulerStatus(
            is_running=self._is_running,
            last_check=self._last_check,
            next_report_time=next_report_time,
            pending_orders_count=self._pending_orders_count,
            time_until_next=self._calculator.time_until(next_report_time, now),
        )

    # ------------------------------------------------------------------
    # One-shot operations
    # ------------------------------------------------------------------
    def generate_manual_report(self, *, raise_on_error: bool = False) -> Optional[GeneratedReport]:
        try:
            report = self._generator.generate_manual()
        except (ReportGenerationError, StoreError):
            LOGGER.exception("Manual report generation failed")
            if raise_on_error:
                raise
            return None
        if report is None:
            LOGGER.info("No pending orders to include in a manual report")
            return None
        self.refresh_pending()
        self._emit(REPORT_GENERATED, report)
        self._emit(STATUS_UPDATED, self.get_status())
        return report

    def run_historical_backfill(self) -> BackfillResult:
        result = self._backfill.run()
        for report in result.reports:
            self._emit(REPORT_GENERATED, report)
        self.refresh_pending()
        self._emit(STATUS_UPDATED, self.get_status())
        return result

    def refresh_pending(self) -> None:
        try:
            self._pending_orders_count = self._generator.tracker.pending_count()
        except StoreError:
            LOGGER.exception("Unable to refresh pending order count")
