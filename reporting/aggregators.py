"""Pure report views derived from a collection of orders.

Every builder is deterministic for a given set of orders regardless of the
order they are supplied in, and returns an empty-but-valid view for empty
input. View keys match the ``reportes`` JSON column consumed by the export
and the UI.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List

import pandas as pd

from reporting.models import Order, format_timestamp

UNKNOWN_CLIENT = "N/A"
UNKNOWN_PRODUCT = "N/A"
DEFAULT_UNIT = "unidad"

VIEW_GENERAL = "general"
VIEW_BY_SUPPLIER = "productos_por_proveedor"
VIEW_ORDERS = "pedidos"
VIEW_NAMES = (VIEW_GENERAL, VIEW_BY_SUPPLIER, VIEW_ORDERS)

_SUPPLIER_COLUMNS = [
    "proveedor_id",
    "proveedor_nombre",
    "articulo_numero",
    "producto_codigo",
    "descripcion",
    "unidad_medida",
    "cantidad",
]


def _distinct(orders: Iterable[Order]) -> List[Order]:
    """Drop duplicate order ids and fix a canonical traversal order."""
    unique = {order.order_id: order for order in orders}
    return [unique[order_id] for order_id in sorted(unique)]


def build_general_view(orders: Iterable[Order], as_of: datetime) -> Dict[str, Any]:
    orders = _distinct(orders)
    if orders:
        first = min(order.ordered_at for order in orders)
        last = max(order.ordered_at for order in orders)
    else:
        first = last = as_of
    return {
        "fecha_corte": format_timestamp(as_of),
        "resumen": {
            "total_pedidos": len(orders),
            "total_productos": sum(len(order.items) for order in orders),
            "total_clientes": len({order.client_id for order in orders}),
            "fecha_inicio": format_timestamp(first),
            "fecha_fin": format_timestamp(last),
        },
    }


def _supplier_rows(orders: Iterable[Order]) -> pd.DataFrame:
    rows = []
    for order in orders:
        for item in order.items:
            product = item.product
            if product is None or product.supplier is None:
                continue
            rows.append(
                {
                    "proveedor_id": product.supplier.supplier_id,
                    "proveedor_nombre": product.supplier.name,
                    "articulo_numero": product.product_id,
                    "producto_codigo": product.code,
                    "descripcion": product.description,
                    "unidad_medida": product.unit or DEFAULT_UNIT,
                    "cantidad": item.quantity,
                }
            )
    return pd.DataFrame(rows, columns=_SUPPLIER_COLUMNS)


def _plain_number(value: Any) -> int | float:
    value = float(value)
    return int(value) if value.is_integer() else value


def build_supplier_view(orders: Iterable[Order], as_of: datetime) -> Dict[str, Any]:
    frame = _supplier_rows(_distinct(orders))
    suppliers: List[Dict[str, Any]] = []
    if not frame.empty:
        totals = (
            frame.groupby(["proveedor_id", "articulo_numero"], sort=True)
            .agg(
                proveedor_nombre=("proveedor_nombre", "first"),
                producto_codigo=("producto_codigo", "first"),
                descripcion=("descripcion", "first"),
                unidad_medida=("unidad_medida", "first"),
                cantidad_total=("cantidad", "sum"),
            )
            .reset_index()
        )
        for supplier_id, group in totals.groupby("proveedor_id", sort=True):
            group = group.sort_values("articulo_numero")
            products = [
                {
                    "articulo_numero": int(row.articulo_numero),
                    "producto_codigo": None if pd.isna(row.producto_codigo) else row.producto_codigo,
                    "descripcion": row.descripcion,
                    "unidad_medida": row.unidad_medida,
                    "cantidad_total": _plain_number(row.cantidad_total),
                }
                for row in group.itertuples(index=False)
            ]
            suppliers.append(
                {
                    "proveedor_id": int(supplier_id),
                    "proveedor_nombre": group["proveedor_nombre"].iloc[0],
                    "productos": products,
                    "total_productos": len(products),
                }
            )
        suppliers.sort(key=lambda supplier: (supplier["proveedor_nombre"], supplier["proveedor_id"]))
    return {
        "fecha_corte": format_timestamp(as_of),
        "proveedores": suppliers,
        "total_proveedores": len(suppliers),
    }


def build_order_view(orders: Iterable[Order], as_of: datetime) -> Dict[str, Any]:
    ordered = sorted(_distinct(orders), key=lambda order: (order.ordered_at, order.order_id), reverse=True)
    entries = []
    for order in ordered:
        products = []
        for item in order.items:
            product = item.product
            products.append(
                {
                    "descripcion": product.description if product else UNKNOWN_PRODUCT,
                    "cantidad": item.quantity,
                    "unidad_medida": (product.unit if product else None) or DEFAULT_UNIT,
                    "proveedor_nombre": product.supplier.name if product and product.supplier else None,
                }
            )
        entries.append(
            {
                "pedido_id": order.order_id,
                "fecha_pedido": format_timestamp(order.ordered_at),
                "cliente_nombre": order.client.name if order.client else UNKNOWN_CLIENT,
                "productos": products,
            }
        )
    return {
        "fecha_corte": format_timestamp(as_of),
        "pedidos": entries,
        "total_pedidos": len(entries),
    }


def build_report_views(orders: Iterable[Order], as_of: datetime) -> Dict[str, Any]:
    orders = _distinct(orders)
    return {
        VIEW_GENERAL: build_general_view(orders, as_of),
        VIEW_BY_SUPPLIER: build_supplier_view(orders, as_of),
        VIEW_ORDERS: build_order_view(orders, as_of),
    }
