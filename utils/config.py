"""Configuration loading helpers backed by YAML settings files."""
from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

DEFAULT_SETTINGS: Dict[str, Any] = {
    "retry_policy": {
        "max_attempts": 3,
        "base_delay_ms": 500,
        "jitter_ms": 250,
        "max_delay_ms": 8000,
    },
    "logging": {"level": "INFO", "json": True},
    "scheduler": {
        "anchor_weekday": 2,
        "anchor_hour": 18,
        "anchor_minute": 0,
        "timezone": "UTC",
        "poll_interval_seconds": 60,
    },
    "store": {
        "backend": "local",
        "path": "data/order_reports.json",
    },
    "supabase": {
        "url": None,
        "key": None,
        "timeout_sec": 10,
    },
}

_ENV_OVERRIDES = {
    "SUPABASE_URL": ("supabase", "url"),
    "SUPABASE_KEY": ("supabase", "key"),
    "ORDER_REPORTS_STORE_PATH": ("store", "path"),
    "ORDER_REPORTS_STORE": ("store", "backend"),
}


class ConfigurationError(ValueError):
    """Raised when settings are missing or inconsistent."""


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_settings(path: str | os.PathLike[str] | None = None) -> Dict[str, Any]:
    """Load YAML configuration merged over the defaults, then apply env overrides."""
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    cfg_path = Path(path or os.getenv("ORDER_REPORTS_CONFIG", "config/settings.yaml"))
    if cfg_path.exists():
        with cfg_path.open("r", encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh) or {}
        if not isinstance(loaded, Mapping):
            raise ConfigurationError(f"{cfg_path} must contain a mapping at top level")
        _merge(settings, loaded)

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            settings.setdefault(section, {})[key] = value
    return settings


@dataclass(frozen=True, slots=True)
class SchedulerSettings:
    """Typed view over the ``scheduler`` section."""

    anchor_weekday: int = 2
    anchor_hour: int = 18
    anchor_minute: int = 0
    timezone: str = "UTC"
    poll_interval_seconds: float = 60.0

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "SchedulerSettings":
        section = settings.get("scheduler", {})
        result = cls(
            anchor_weekday=int(section.get("anchor_weekday", 2)),
            anchor_hour=int(section.get("anchor_hour", 18)),
            anchor_minute=int(section.get("anchor_minute", 0)),
            timezone=str(section.get("timezone", "UTC")),
            poll_interval_seconds=float(section.get("poll_interval_seconds", 60)),
        )
        if not 0 <= result.anchor_weekday <= 6:
            raise ConfigurationError("scheduler.anchor_weekday must be between 0 (Monday) and 6 (Sunday)")
        if not 0 <= result.anchor_hour <= 23 or not 0 <= result.anchor_minute <= 59:
            raise ConfigurationError("scheduler anchor time is out of range")
        if result.poll_interval_seconds <= 0:
            raise ConfigurationError("scheduler.poll_interval_seconds must be positive")
        return result
