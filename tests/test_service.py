from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from reporting.scheduler import ReportScheduler
from reporting.service import XLSX_MEDIA_TYPE, create_app
from tests.sample_orders import at, make_generator, make_order, make_store

NOW = at(2024, 1, 12, 10, 0)


@pytest.fixture()
def store(tmp_path):
    return make_store(tmp_path)


@pytest.fixture()
def client(store):
    scheduler = ReportScheduler(make_generator(store, NOW))
    yield TestClient(create_app(scheduler))
    scheduler.stop()


def test_manual_report_with_no_pending_orders(client) -> None:
    response = client.post("/reports/manual")
    assert response.status_code == 200
    assert response.json()["report"] is None
    assert client.get("/reports").json() == []


def test_manual_report_then_fetch_and_export(client, store) -> None:
    store.add_orders([make_order(1, at(2024, 1, 11, 9, 0), [(101, 2)]), make_order(2, at(2024, 1, 11, 12, 0))])

    created = client.post("/reports/manual")
    assert created.status_code == 201
    record = created.json()["report"]
    assert record["tipo"] == "manual"
    assert record["pedidos_incluidos"] == [1, 2]

    listing = client.get("/reports").json()
    assert [item["id"] for item in listing] == [record["id"]]
    assert "reportes" not in listing[0]

    detail = client.get(f"/reports/{record['id']}")
    assert detail.status_code == 200
    assert detail.json()["reportes"]["general"]["resumen"]["total_pedidos"] == 2

    export = client.get(f"/reports/{record['id']}/export", params={"view": "productos_por_proveedor"})
    assert export.status_code == 200
    assert export.headers["content-type"] == XLSX_MEDIA_TYPE
    assert "reporte-productos_por_proveedor-" in export.headers["content-disposition"]
    assert export.content[:2] == b"PK"


def test_export_validation(client, store) -> None:
    store.add_orders([make_order(1, at(2024, 1, 11, 9, 0))])
    report_id = client.post("/reports/manual").json()["report"]["id"]

    assert client.get(f"/reports/{report_id}/export", params={"view": "por_cliente"}).status_code == 400
    assert client.get("/reports/manual_0_missing/export").status_code == 404
    assert client.get("/reports/manual_0_missing").status_code == 404


def test_backfill_and_status(client, store) -> None:
    store.add_orders([make_order(1, at(2024, 1, 4, 9, 0)), make_order(2, at(2024, 1, 11, 9, 0))])

    result = client.post("/reports/backfill").json()
    assert result["success"] is True
    assert result["reports_generated"] == 2
    assert len(result["report_ids"]) == 2

    status = client.get("/scheduler/status").json()
    assert status["is_running"] is False
    assert status["pending_orders_count"] == 0
    assert status["next_report_time"] == "2024-01-17T18:00:00+00:00"
