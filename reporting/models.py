"""Domain records for orders and generated weekly reports.

Row mapping follows the hosted database columns (``pedidos``,
``pedido_productos``, ``productos``, ``proveedores``, ``clientes`` and
``reportes_automaticos``) so the same records round-trip through the REST
store, the local JSON store and the HTTP API.
"""
from __future__ import annotations

import enum
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

from utils.time_windows import TimeRemaining

_ID_ALPHABET = string.ascii_lowercase + string.digits


def parse_timestamp(value: Any) -> datetime:
    """Parse ISO strings or datetimes into aware UTC datetimes."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp value: {value!r}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReportKind(str, enum.Enum):
    AUTOMATIC = "automatico"
    MANUAL = "manual"


class ReportOrigin(str, enum.Enum):
    """Identifier prefix distinguishing how a report came to exist."""

    AUTOMATIC = "auto"
    MANUAL = "manual"
    HISTORICAL = "historico"


def new_report_id(origin: ReportOrigin, moment: datetime | None = None) -> str:
    moment = moment or utc_now()
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{origin.value}_{int(moment.timestamp() * 1000)}_{suffix}"


@dataclass(frozen=True, slots=True)
class Supplier:
    supplier_id: int
    name: str


@dataclass(frozen=True, slots=True)
class Product:
    product_id: int
    description: str
    code: Optional[str] = None
    unit: Optional[str] = None
    supplier: Optional[Supplier] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Product":
        supplier_row = payload.get("proveedores") or payload.get("proveedor")
        supplier = None
        if supplier_row:
            supplier = Supplier(int(supplier_row["proveedor_id"]), supplier_row.get("proveedor_nombre") or "")
        return cls(
            product_id=int(payload["articulo_numero"]),
            description=payload.get("descripcion") or "",
            code=payload.get("producto_codigo"),
            unit=payload.get("unidad_medida"),
            supplier=supplier,
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "articulo_numero": self.product_id,
            "producto_codigo": self.code,
            "descripcion": self.description,
            "unidad_medida": self.unit,
        }
        if self.supplier is not None:
            record["proveedor_id"] = self.supplier.supplier_id
            record["proveedores"] = {
                "proveedor_id": self.supplier.supplier_id,
                "proveedor_nombre": self.supplier.name,
            }
        return record


@dataclass(frozen=True, slots=True)
class Client:
    client_id: int
    name: str
    code: Optional[int] = None


@dataclass(frozen=True, slots=True)
class LineItem:
    product_id: int
    quantity: float
    product: Optional[Product] = None

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValueError(f"Line item quantity must be non-negative, got {self.quantity}")


@dataclass(frozen=True, slots=True)
class Order:
    """An order as read from the CRUD layer. Never mutated by reporting."""

    order_id: int
    client_id: int
    ordered_at: datetime
    items: tuple[LineItem, ...] = ()
    client: Optional[Client] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Order":
        client_row = payload.get("clientes") or payload.get("cliente")
        client = None
        if client_row:
            client = Client(
                client_id=int(client_row.get("cliente_id", payload["cliente_id"])),
                name=client_row.get("nombre") or "",
                code=client_row.get("cliente_codigo"),
            )
        items = []
        for row in payload.get("pedido_productos") or payload.get("productos") or []:
            product_row = row.get("productos") or row.get("producto")
            items.append(
                LineItem(
                    product_id=int(row["articulo_numero"]),
                    quantity=row.get("cantidad") or 0,
                    product=Product.from_mapping(product_row) if product_row else None,
                )
            )
        return cls(
            order_id=int(payload["pedido_id"]),
            client_id=int(payload["cliente_id"]),
            ordered_at=parse_timestamp(payload["fecha_pedido"]),
            items=tuple(items),
            client=client,
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "pedido_id": self.order_id,
            "cliente_id": self.client_id,
            "fecha_pedido": format_timestamp(self.ordered_at),
            "pedido_productos": [
                {
                    "articulo_numero": item.product_id,
                    "cantidad": item.quantity,
                    "productos": item.product.to_record() if item.product else None,
                }
                for item in self.items
            ],
        }
        if self.client is not None:
            record["clientes"] = {
                "cliente_id": self.client.client_id,
                "cliente_codigo": self.client.code,
                "nombre": self.client.name,
            }
        return record


@dataclass(frozen=True, slots=True)
class GeneratedReport:
    """Immutable record of one generated report."""

    report_id: str
    kind: ReportKind
    generated_at: datetime
    period_start: datetime
    period_end: datetime
    order_ids: tuple[int, ...]
    views: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.order_ids:
            raise ValueError("A generated report must include at least one order")

    @property
    def origin(self) -> ReportOrigin:
        return ReportOrigin(self.report_id.split("_", 1)[0])

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "GeneratedReport":
        return cls(
            report_id=str(payload["id"]),
            kind=ReportKind(payload["tipo"]),
            generated_at=parse_timestamp(payload["fecha_generacion"]),
            period_start=parse_timestamp(payload["fecha_inicio_periodo"]),
            period_end=parse_timestamp(payload["fecha_fin_periodo"]),
            order_ids=tuple(int(order_id) for order_id in payload.get("pedidos_incluidos") or ()),
            views=payload.get("reportes") or {},
        )

    def to_record(self) -> Dict[str, Any]:
        generated_at = format_timestamp(self.generated_at)
        return {
            "id": self.report_id,
            "tipo": self.kind.value,
            "fecha_generacion": generated_at,
            "fecha_inicio_periodo": format_timestamp(self.period_start),
            "fecha_fin_periodo": format_timestamp(self.period_end),
            "pedidos_incluidos": list(self.order_ids),
            "reportes": dict(self.views),
            "created_at": generated_at,
            "updated_at": generated_at,
        }


@dataclass(frozen=True, slots=True)
class ReportedMarker:
    order_id: int
    report_id: str
    included_at: datetime


@dataclass(slots=True)
class SchedulerStatus:
    """Transient poller state, rebuilt on every tick."""

    is_running: bool
    last_check: Optional[datetime]
    next_report_time: Optional[datetime]
    pending_orders_count: int
    time_until_next: TimeRemaining

    def to_record(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_check": format_timestamp(self.last_check) if self.last_check else None,
            "next_report_time": format_timestamp(self.next_report_time) if self.next_report_time else None,
            "pending_orders_count": self.pending_orders_count,
            "time_until_next": self.time_until_next.as_dict(),
        }


@dataclass(slots=True)
class BackfillResult:
    success: bool
    reports_generated: int
    errors: Sequence[str] = field(default_factory=list)
    reports: Sequence[GeneratedReport] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "reports_generated": self.reports_generated,
            "errors": list(self.errors),
            "report_ids": [report.report_id for report in self.reports],
        }
