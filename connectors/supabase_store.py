"""Order store backed by the hosted Postgres database through its REST API."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from connectors.base import BaseConnector, UpstreamError, with_retries
from reporting.models import GeneratedReport, Order, format_timestamp
from reporting.store import map_rows
from utils.config import ConfigurationError

ORDERS_TABLE = "pedidos"
REPORTS_TABLE = "reportes_automaticos"

ORDER_SELECT = (
    "pedido_id,cliente_id,fecha_pedido,"
    "clientes(cliente_id,cliente_codigo,nombre),"
    "pedido_productos(articulo_numero,cantidad,"
    "productos(articulo_numero,producto_codigo,descripcion,unidad_medida,proveedor_id,"
    "proveedores(proveedor_id,proveedor_nombre)))"
)


class SupabaseOrderStore(BaseConnector):
    """PostgREST implementation of the reporting ``OrderStore`` protocol.

    Marking an order is a conditional update filtered on
    ``incluido_en_reporte=is.false``, so an order that another writer already
    marked is never re-attributed.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        settings: Dict[str, Any] | None = None,
        session: Any | None = None,
        timeout: float = 10.0,
        page_size: int = 1000,
    ) -> None:
        super().__init__(
            service_name="supabase",
            base_url=f"{url.rstrip('/')}/rest/v1",
            settings=settings,
            session=session,
            timeout=timeout,
        )
        self.api_key = api_key
        self.page_size = page_size

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], session: Optional[requests.Session] = None) -> "SupabaseOrderStore":
        cfg = settings.get("supabase", {})
        if not cfg.get("url") or not cfg.get("key"):
            raise ConfigurationError("supabase.url and supabase.key (or SUPABASE_URL/SUPABASE_KEY) are required")
        return cls(
            cfg["url"],
            cfg["key"],
            settings=settings,
            session=session,
            timeout=float(cfg.get("timeout_sec", 10)),
        )

    def _default_headers(self) -> Dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    # ------------------------------------------------------------------
    # HTTP wrappers
    # ------------------------------------------------------------------
    @with_retries("select")
    def _select(self, table: str, params: Dict[str, Any], offset: int = 0) -> List[Dict[str, Any]]:
        headers = {"Range-Unit": "items", "Range": f"{offset}-{offset + self.page_size - 1}"}
        rows = self._http_request("GET", table, params=params, headers=headers)
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise UpstreamError(f"Unexpected payload from {table}: {type(rows).__name__}")
        return rows

    def _select_all(self, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self._select(table, params, offset)
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            offset += self.page_size

    @with_retries("insert")
    def _insert(self, table: str, record: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._http_request(
            "POST",
            table,
            json_payload=[record],
            headers={"Prefer": "return=representation"},
        ) or []

    @with_retries("update")
    def _update(self, table: str, filters: Dict[str, str], changes: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._http_request(
            "PATCH",
            table,
            params=filters,
            json_payload=changes,
            headers={"Prefer": "return=representation"},
        ) or []

    # ------------------------------------------------------------------
    # OrderStore operations
    # ------------------------------------------------------------------
    def list_orders(self) -> List[Order]:
        # Paging needs a total order; timestamps alone tie for bulk-imported orders.
        rows = self._select_all(ORDERS_TABLE, {"select": ORDER_SELECT, "order": "fecha_pedido.asc,pedido_id.asc"})
        self.logger.debug("Fetched %s orders", len(rows))
        return map_rows(rows, Order.from_mapping, "pedido_id", ORDERS_TABLE)

    def list_generated_reports(self) -> List[GeneratedReport]:
        rows = self._select_all(REPORTS_TABLE, {"select": "*", "order": "fecha_generacion.asc,id.asc"})
        return map_rows(rows, GeneratedReport.from_mapping, "id", REPORTS_TABLE)

    def persist_generated_report(self, report: GeneratedReport) -> GeneratedReport:
        rows = self._insert(REPORTS_TABLE, report.to_record())
        if not rows:
            return report
        return map_rows(rows[:1], GeneratedReport.from_mapping, "id", REPORTS_TABLE)[0]

    def mark_order_reported(self, order_id: int, report_id: str, included_at: datetime) -> bool:
        rows = self._update(
            ORDERS_TABLE,
            {"pedido_id": f"eq.{order_id}", "incluido_en_reporte": "is.false"},
            {
                "incluido_en_reporte": True,
                "fecha_inclusion_reporte": format_timestamp(included_at),
                "reporte_id": report_id,
            },
        )
        return bool(rows)

    def is_order_reported(self, order_id: int) -> bool:
        rows = self._select(
            ORDERS_TABLE,
            {"select": "incluido_en_reporte", "pedido_id": f"eq.{order_id}"},
        )
        return bool(rows and rows[0].get("incluido_en_reporte"))

    def healthcheck(self) -> bool:
        try:
            self._select(REPORTS_TABLE, {"select": "id", "limit": "1"})
        except UpstreamError:
            return False
        return True
