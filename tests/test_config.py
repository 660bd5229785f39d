from __future__ import annotations

import logging

import pytest

from reporting.factory import build_scheduler, build_store
from reporting.store import LocalOrderStore
from utils.backoff import RetryPolicy
from utils.config import ConfigurationError, SchedulerSettings, load_settings
from utils.logging import JsonFormatter, apply_logging_settings, get_logger


def test_yaml_overrides_merge_with_defaults(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("ORDER_REPORTS_STORE_PATH", raising=False)
    config = tmp_path / "settings.yaml"
    config.write_text("scheduler:\n  anchor_hour: 11\n  timezone: America/Argentina/Buenos_Aires\n", encoding="utf-8")

    settings = load_settings(config)

    assert settings["scheduler"]["anchor_hour"] == 11
    assert settings["scheduler"]["anchor_weekday"] == 2
    assert settings["store"]["path"] == "data/order_reports.json"
    assert RetryPolicy.from_settings(settings).max_attempts == 3


def test_environment_overrides_credentials(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://example.supabase.co")
    monkeypatch.setenv("SUPABASE_KEY", "secret")
    monkeypatch.setenv("ORDER_REPORTS_STORE_PATH", str(tmp_path / "orders.json"))

    settings = load_settings(tmp_path / "missing.yaml")

    assert settings["supabase"]["url"] == "https://example.supabase.co"
    assert settings["supabase"]["key"] == "secret"
    store = build_store(settings)
    assert isinstance(store, LocalOrderStore)
    assert store.path == tmp_path / "orders.json"


def test_non_mapping_yaml_rejected(tmp_path) -> None:
    config = tmp_path / "settings.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_settings(config)


@pytest.mark.parametrize(
    "section",
    [{"anchor_weekday": 7}, {"anchor_hour": 24}, {"poll_interval_seconds": 0}],
)
def test_scheduler_settings_validation(section) -> None:
    with pytest.raises(ConfigurationError):
        SchedulerSettings.from_settings({"scheduler": section})


def test_unknown_backend_rejected() -> None:
    with pytest.raises(ConfigurationError):
        build_store({"store": {"backend": "sqlite"}})


def test_build_scheduler_uses_configured_anchor(tmp_path) -> None:
    settings = {
        "scheduler": {"anchor_weekday": 4, "anchor_hour": 9, "anchor_minute": 30, "poll_interval_seconds": 5},
        "store": {"backend": "local", "path": str(tmp_path / "orders.json")},
    }
    scheduler = build_scheduler(settings)
    calculator = scheduler.generator.calculator
    assert (calculator.weekday, calculator.hour, calculator.minute) == (4, 9, 30)
    assert not scheduler.is_running


def test_logging_section_applies_to_existing_loggers(monkeypatch) -> None:
    monkeypatch.delenv("ORDER_REPORTS_LOG_LEVEL", raising=False)
    monkeypatch.delenv("ORDER_REPORTS_LOG_JSON", raising=False)
    logger = get_logger("order_reports.config_test")
    try:
        apply_logging_settings({"logging": {"level": "WARNING", "json": False}})
        assert logger.level == logging.WARNING
        assert not isinstance(logger.handlers[0].formatter, JsonFormatter)
    finally:
        apply_logging_settings({"logging": {"level": "INFO", "json": True}})
    assert isinstance(logger.handlers[0].formatter, JsonFormatter)
