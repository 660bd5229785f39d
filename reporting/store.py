"""Persistence collaborators used by the reporting core."""
from __future__ import annotations

import json
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Protocol, TypeVar

from reporting.models import GeneratedReport, Order, format_timestamp
from utils.logging import get_logger

LOGGER = get_logger(__name__)


class StoreError(RuntimeError):
    """Raised when the persistence collaborator cannot complete a call."""


T = TypeVar("T")


def map_rows(
    rows: Iterable[Mapping[str, Any]],
    mapper: Callable[[Mapping[str, Any]], T],
    id_key: str,
    table: str,
) -> List[T]:
    """Map stored rows to records, reporting a malformed row as a ``StoreError``."""
    records = []
    for row in rows:
        try:
            records.append(mapper(row))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            row_id = row.get(id_key) if isinstance(row, Mapping) else None
            raise StoreError(f"Malformed {table} row {row_id!r}: {exc!r}") from exc
    return records


class OrderStore(Protocol):
    """Subset of the data-access layer the reporting core depends on."""

    def list_orders(self) -> List[Order]:  # noqa: D401
        ...

    def list_generated_reports(self) -> List[GeneratedReport]:  # noqa: D401
        ...

    def persist_generated_report(self, report: GeneratedReport) -> GeneratedReport:  # noqa: D401
        ...

    def mark_order_reported(self, order_id: int, report_id: str, included_at: datetime) -> bool:
        """Conditionally mark an order; return ``False`` if it was already marked."""
        ...

    def is_order_reported(self, order_id: int) -> bool:  # noqa: D401
        ...


class LocalOrderStore:
    """JSON-file store for local development and tests.

    The file holds ``{"pedidos": [...], "reportes_automaticos": [...]}`` using
    the same row shapes as the hosted database.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # JSON persistence helpers
    # ------------------------------------------------------------------
    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {"pedidos": [], "reportes_automaticos": []}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreError(f"Unable to read {self._path}: {exc}") from exc
        payload.setdefault("pedidos", [])
        payload.setdefault("reportes_automaticos", [])
        return payload

    def _save(self, payload: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self._path)

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------
    def add_orders(self, orders: Iterable[Order]) -> None:
        with self._lock:
            payload = self._load()
            existing = {row["pedido_id"] for row in payload["pedidos"]}
            for order in orders:
                if order.order_id in existing:
                    raise StoreError(f"Order {order.order_id} already exists")
                record = order.to_record()
                record.update(incluido_en_reporte=False, fecha_inclusion_reporte=None, reporte_id=None)
                payload["pedidos"].append(record)
                existing.add(order.order_id)
            self._save(payload)

    # ------------------------------------------------------------------
    # OrderStore operations
    # ------------------------------------------------------------------
    def list_orders(self) -> List[Order]:
        payload = self._load()
        return map_rows(payload["pedidos"], Order.from_mapping, "pedido_id", "pedidos")

    def list_generated_reports(self) -> List[GeneratedReport]:
        payload = self._load()
        return map_rows(payload["reportes_automaticos"], GeneratedReport.from_mapping, "id", "reportes_automaticos")

    def persist_generated_report(self, report: GeneratedReport) -> GeneratedReport:
        with self._lock:
            payload = self._load()
            if any(row["id"] == report.report_id for row in payload["reportes_automaticos"]):
                raise StoreError(f"Report {report.report_id} already exists")
            payload["reportes_automaticos"].append(report.to_record())
            self._save(payload)
        LOGGER.debug("Persisted report %s to %s", report.report_id, self._path)
        return report

    def mark_order_reported(self, order_id: int, report_id: str, included_at: datetime) -> bool:
        with self._lock:
            payload = self._load()
            for row in payload["pedidos"]:
                if row["pedido_id"] != order_id:
                    continue
                if row.get("incluido_en_reporte"):
                    return False
                row["incluido_en_reporte"] = True
                row["fecha_inclusion_reporte"] = format_timestamp(included_at)
                row["reporte_id"] = report_id
                self._save(payload)
                return True
        raise StoreError(f"Order {order_id} not found")

    def is_order_reported(self, order_id: int) -> bool:
        payload = self._load()
        for row in payload["pedidos"]:
            if row["pedido_id"] == order_id:
                return bool(row.get("incluido_en_reporte"))
        raise StoreError(f"Order {order_id} not found")
