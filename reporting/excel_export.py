"""Spreadsheet rendering of a generated report's views."""
from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Sequence
from xml.sax.saxutils import escape, quoteattr

from reporting.aggregators import VIEW_BY_SUPPLIER, VIEW_GENERAL, VIEW_NAMES, VIEW_ORDERS
from reporting.models import GeneratedReport, parse_timestamp
from utils.logging import get_logger

LOGGER = get_logger(__name__)

VIEW_ALL = "all"
EXPORT_VIEWS = VIEW_NAMES + (VIEW_ALL,)

Cell = object
Row = Sequence[Cell]

_MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
_REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
_PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
_SHEET_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"


class ExportError(ValueError):
    """Raised for unknown views or reports missing view data."""


def _column_letter(index: int) -> str:
    """Convert a zero-based column index into Excel column letters."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


@dataclass(slots=True)
class Sheet:
    name: str
    rows: List[Row]
    widths: Sequence[int] = field(default_factory=tuple)


class WorkbookWriter:
    """Write simple row-oriented sheets as an XLSX package using inline strings."""

    def __init__(self) -> None:
        self._sheets: List[Sheet] = []

    def add_sheet(self, name: str, rows: Iterable[Row], widths: Sequence[int] = ()) -> None:
        self._sheets.append(Sheet(name[:31], [list(row) for row in rows], widths))

    @staticmethod
    def _cell_xml(ref: str, value: Cell) -> Optional[str]:
        if value is None or value == "":
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return f'<c r="{ref}"><v>{value}</v></c>'
        return f'<c r="{ref}" t="inlineStr"><is><t xml:space="preserve">{escape(str(value))}</t></is></c>'

    def _sheet_xml(self, sheet: Sheet) -> str:
        parts = [f'<?xml version="1.0" encoding="UTF-8"?><worksheet xmlns="{_MAIN_NS}">']
        if sheet.widths:
            parts.append("<cols>")
            for idx, width in enumerate(sheet.widths, start=1):
                parts.append(f'<col min="{idx}" max="{idx}" width="{width}" customWidth="1"/>')
            parts.append("</cols>")
        parts.append("<sheetData>")
        for row_idx, row in enumerate(sheet.rows, start=1):
            cells = [
                xml
                for col_idx, value in enumerate(row)
                if (xml := self._cell_xml(f"{_column_letter(col_idx)}{row_idx}", value)) is not None
            ]
            parts.append(f'<row r="{row_idx}">{"".join(cells)}</row>')
        parts.append("</sheetData></worksheet>")
        return "".join(parts)

    def write(self, target: Path | BinaryIO) -> None:
        if not self._sheets:
            raise ExportError("Workbook has no sheets")
        count = len(self._sheets)
        overrides = "".join(
            f'<Override PartName="/xl/worksheets/sheet{idx}.xml" ContentType="{_SHEET_TYPE}"/>'
            for idx in range(1, count + 1)
        )
        with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as zf:
            zf.writestr(
                "[Content_Types].xml",
                '<?xml version="1.0" encoding="UTF-8"?>'
                '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
                '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
                '<Default Extension="xml" ContentType="application/xml"/>'
                '<Override PartName="/xl/workbook.xml" '
                'ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"/>'
                f"{overrides}</Types>",
            )
            zf.writestr(
                "_rels/.rels",
                f'<?xml version="1.0" encoding="UTF-8"?><Relationships xmlns="{_PKG_REL_NS}">'
                f'<Relationship Id="rId1" Type="{_REL_NS}/officeDocument" Target="xl/workbook.xml"/>'
                "</Relationships>",
            )
            zf.writestr(
                "xl/_rels/workbook.xml.rels",
                f'<?xml version="1.0" encoding="UTF-8"?><Relationships xmlns="{_PKG_REL_NS}">'
                + "".join(
                    f'<Relationship Id="rId{idx}" Type="{_REL_NS}/worksheet" Target="worksheets/sheet{idx}.xml"/>'
                    for idx in range(1, count + 1)
                )
                + "</Relationships>",
            )
            zf.writestr(
                "xl/workbook.xml",
                f'<?xml version="1.0" encoding="UTF-8"?><workbook xmlns="{_MAIN_NS}" xmlns:r="{_REL_NS}"><sheets>'
                + "".join(
                    f"<sheet name={quoteattr(sheet.name)} sheetId=\"{idx}\" r:id=\"rId{idx}\"/>"
                    for idx, sheet in enumerate(self._sheets, start=1)
                )
                + "</sheets></workbook>",
            )
            for idx, sheet in enumerate(self._sheets, start=1):
                zf.writestr(f"xl/worksheets/sheet{idx}.xml", self._sheet_xml(sheet))


def _format_date(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return parse_timestamp(value).strftime("%d/%m/%Y")
    except (TypeError, ValueError):
        return str(value)


def _general_rows(report: GeneratedReport) -> List[Row]:
    general = report.views[VIEW_GENERAL]
    summary = general["resumen"]
    rows: List[Row] = [
        ["REPORTE GENERAL DE PEDIDOS"],
        [],
        ["Fecha de Corte:", _format_date(general["fecha_corte"])],
        ["Período:", f"{_format_date(summary['fecha_inicio'])} - {_format_date(summary['fecha_fin'])}"],
        [],
        ["RESUMEN"],
        ["Total de Pedidos:", summary["total_pedidos"]],
        ["Total de Productos:", summary["total_productos"]],
        ["Total de Clientes:", summary["total_clientes"]],
        [],
        ["DETALLE DE PEDIDOS"],
        ["Pedido ID", "Cliente", "Fecha", "Producto", "Cantidad", "Unidad", "Proveedor"],
    ]
    for order in report.views.get(VIEW_ORDERS, {}).get("pedidos", []):
        for index, product in enumerate(order["productos"]):
            first = index == 0
            rows.append(
                [
                    order["pedido_id"] if first else "",
                    order["cliente_nombre"] if first else "",
                    _format_date(order["fecha_pedido"]) if first else "",
                    product["descripcion"],
                    product["cantidad"],
                    product["unidad_medida"],
                    product.get("proveedor_nombre") or "",
                ]
            )
    return rows


def _supplier_rows(report: GeneratedReport) -> List[Row]:
    view = report.views[VIEW_BY_SUPPLIER]
    rows: List[Row] = [
        ["REPORTE POR PROVEEDOR"],
        [],
        ["Fecha de Corte:", _format_date(view["fecha_corte"])],
        ["Total de Proveedores:", view["total_proveedores"]],
        [],
        ["PRODUCTOS POR PROVEEDOR"],
        ["Proveedor", "Artículo", "Código", "Descripción", "Unidad", "Cantidad Total"],
    ]
    for supplier in view["proveedores"]:
        for index, product in enumerate(supplier["productos"]):
            rows.append(
                [
                    supplier["proveedor_nombre"] if index == 0 else "",
                    product["articulo_numero"],
                    product.get("producto_codigo") or "",
                    product["descripcion"],
                    product["unidad_medida"],
                    product["cantidad_total"],
                ]
            )
        rows.append([f"TOTAL {supplier['proveedor_nombre'].upper()}:", "", "", "", "", supplier["total_productos"]])
        rows.append([])
    return rows


def _order_rows(report: GeneratedReport) -> List[Row]:
    view = report.views[VIEW_ORDERS]
    rows: List[Row] = [
        ["REPORTE DE PEDIDOS"],
        [],
        ["Fecha de Corte:", _format_date(view["fecha_corte"])],
        ["Total de Pedidos:", view["total_pedidos"]],
        [],
        ["DETALLE DE PEDIDOS"],
        ["Pedido ID", "Cliente", "Fecha", "Producto", "Cantidad", "Unidad"],
    ]
    for order in view["pedidos"]:
        for index, product in enumerate(order["productos"]):
            first = index == 0
            rows.append(
                [
                    order["pedido_id"] if first else "",
                    order["cliente_nombre"] if first else "",
                    _format_date(order["fecha_pedido"]) if first else "",
                    product["descripcion"],
                    product["cantidad"],
                    product["unidad_medida"],
                ]
            )
    return rows


_SHEETS = {
    VIEW_GENERAL: ("Reporte General", _general_rows, (10, 25, 12, 30, 10, 10, 20)),
    VIEW_BY_SUPPLIER: ("Por Proveedor", _supplier_rows, (25, 12, 14, 35, 10, 15)),
    VIEW_ORDERS: ("Pedidos", _order_rows, (10, 25, 12, 35, 10, 10)),
}


def export_filename(report: GeneratedReport, view: str) -> str:
    stamp = report.generated_at.strftime("%Y-%m-%dT%H-%M-%S")
    return f"reporte-{view}-{stamp}.xlsx"


def build_workbook(report: GeneratedReport, view: str = VIEW_ALL) -> WorkbookWriter:
    if view not in EXPORT_VIEWS:
        raise ExportError(f"Unknown view {view!r}; expected one of {', '.join(EXPORT_VIEWS)}")
    selected = VIEW_NAMES if view == VIEW_ALL else (view,)
    missing = [name for name in selected if name not in report.views]
    if missing:
        raise ExportError(f"Report {report.report_id} has no data for {', '.join(missing)}")
    writer = WorkbookWriter()
    for name in selected:
        title, build_rows, widths = _SHEETS[name]
        writer.add_sheet(title, build_rows(report), widths)
    return writer


def export_report(report: GeneratedReport, view: str, target: Path | BinaryIO) -> None:
    """Write ``report``'s ``view`` (or all views) as an XLSX workbook to ``target``."""
    LOGGER.info("Exporting view %s of report %s", view, report.report_id)
    build_workbook(report, view).write(target)


def export_report_bytes(report: GeneratedReport, view: str) -> bytes:
    buffer = io.BytesIO()
    export_report(report, view, buffer)
    return buffer.getvalue()
