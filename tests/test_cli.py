from __future__ import annotations

import json
import zipfile

import pytest

from reporting import cli
from tests.sample_orders import at, make_order, make_store


@pytest.fixture()
def config_path(tmp_path, monkeypatch):
    for name in ("ORDER_REPORTS_STORE", "ORDER_REPORTS_STORE_PATH"):
        monkeypatch.delenv(name, raising=False)
    store = make_store(tmp_path, [make_order(1, at(2024, 1, 4, 9, 0)), make_order(2, at(2024, 1, 11, 9, 0))])
    config = tmp_path / "settings.yaml"
    config.write_text(f"store:\n  backend: local\n  path: {store.path}\n", encoding="utf-8")
    return config


def test_backfill_then_export(config_path, tmp_path, capsys) -> None:
    assert cli.main(["--config", str(config_path), "backfill"]) == 0
    result = json.loads(capsys.readouterr().out)
    assert result["success"] is True
    assert result["reports_generated"] == 2

    output = tmp_path / "week.xlsx"
    report_id = result["report_ids"][0]
    assert cli.main(["--config", str(config_path), "export", report_id, "--view", "pedidos", "--output", str(output)]) == 0
    assert zipfile.is_zipfile(output)

    assert cli.main(["--config", str(config_path), "export", "manual_0_missing"]) == 2


def test_manual_and_status(config_path, capsys) -> None:
    assert cli.main(["--config", str(config_path), "manual"]) == 0
    created = json.loads(capsys.readouterr().out)
    assert created["orders"] == [1, 2]

    assert cli.main(["--config", str(config_path), "manual"]) == 0
    assert capsys.readouterr().out == ""

    assert cli.main(["--config", str(config_path), "status"]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status["pending_orders_count"] == 0
    assert status["is_running"] is False
