"""HTTP endpoints exposing the report scheduler to the web UI."""
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Query, Response, status

from reporting.aggregators import VIEW_GENERAL
from reporting.excel_export import EXPORT_VIEWS, ExportError, export_filename, export_report_bytes
from reporting.generator import ReportGenerationError
from reporting.models import GeneratedReport
from reporting.scheduler import ReportScheduler
from reporting.store import StoreError
from utils.logging import get_logger

LOGGER = get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _summary(report: GeneratedReport) -> Dict[str, Any]:
    record = report.to_record()
    record.pop("reportes")
    return record


def create_app(scheduler: ReportScheduler) -> FastAPI:
    """Build the API around a scheduler owned by the hosting process."""
    app = FastAPI(title="Order Reports Service")
    app.state.scheduler = scheduler
    store = scheduler.generator.store

    def _find_report(report_id: str) -> GeneratedReport:
        try:
            reports = store.list_generated_reports()
        except StoreError as exc:
            LOGGER.exception("Unable to list reports")
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Error loading reports") from exc
        for report in reports:
            if report.report_id == report_id:
                return report
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Report {report_id} not found")

    @app.get("/scheduler/status")
    def scheduler_status() -> Dict[str, Any]:
        return scheduler.get_status().to_record()

    @app.post("/scheduler/start")
    def scheduler_start() -> Dict[str, Any]:
        scheduler.start()
        return scheduler.get_status().to_record()

    @app.post("/scheduler/stop")
    def scheduler_stop() -> Dict[str, Any]:
        scheduler.stop()
        return scheduler.get_status().to_record()

    @app.post("/reports/manual")
    def manual_report(response: Response) -> Dict[str, Any]:
        try:
            report = scheduler.generate_manual_report(raise_on_error=True)
        except (ReportGenerationError, StoreError) as exc:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Error al generar el reporte manual.",
            ) from exc
        if report is None:
            response.status_code = status.HTTP_200_OK
            return {"report": None, "message": "No hay pedidos pendientes para incluir en el reporte."}
        response.status_code = status.HTTP_201_CREATED
        return {"report": report.to_record()}

    @app.post("/reports/backfill")
    def historical_backfill() -> Dict[str, Any]:
        return scheduler.run_historical_backfill().to_record()

    @app.get("/reports")
    def list_reports() -> List[Dict[str, Any]]:
        try:
            reports = store.list_generated_reports()
        except StoreError as exc:
            LOGGER.exception("Unable to list reports")
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Error loading reports") from exc
        reports.sort(key=lambda report: report.generated_at, reverse=True)
        return [_summary(report) for report in reports]

    @app.get("/reports/{report_id}")
    def get_report(report_id: str) -> Dict[str, Any]:
        return _find_report(report_id).to_record()

    @app.get("/reports/{report_id}/export")
    def export(report_id: str, view: str = Query(VIEW_GENERAL)) -> Response:
        if view not in EXPORT_VIEWS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"view must be one of {', '.join(EXPORT_VIEWS)}",
            )
        report = _find_report(report_id)
        try:
            content = export_report_bytes(report, view)
        except ExportError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        filename = export_filename(report, view)
        return Response(
            content=content,
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return app
