"""Project-wide logging utilities."""
from __future__ import annotations

import json
import logging
import os
from logging import Logger
from typing import Any, Dict, Mapping, Optional

DEFAULT_LOGGER_NAME = "order_reports"

_CONFIGURED: Dict[str, Logger] = {}
_APPLIED: Dict[str, Any] = {}


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _formatter(json_output: bool) -> logging.Formatter:
    if json_output:
        return JsonFormatter()
    return logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def configure_logger(name: str, level: str | None = None, json_output: bool | None = None) -> Logger:
    """Configure and return a project logger.

    ``ORDER_REPORTS_LOG_LEVEL`` and ``ORDER_REPORTS_LOG_JSON`` override the
    defaults when the arguments are not given explicitly.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = level or _APPLIED.get("level") or os.getenv("ORDER_REPORTS_LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = _APPLIED.get("json")
    if json_output is None:
        json_output = os.getenv("ORDER_REPORTS_LOG_JSON", "1").lower() not in {"0", "false", "no"}

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(_formatter(json_output))
    logger.addHandler(handler)
    logger.propagate = False
    _CONFIGURED[name] = logger
    return logger


def apply_logging_settings(settings: Mapping[str, Any]) -> None:
    """Re-apply the ``logging`` settings section to every project logger.

    The environment variables still win over the settings file.
    """
    section = settings.get("logging", {})
    level = os.getenv("ORDER_REPORTS_LOG_LEVEL") or str(section.get("level", "INFO"))
    json_env = os.getenv("ORDER_REPORTS_LOG_JSON")
    if json_env is not None:
        json_output = json_env.lower() not in {"0", "false", "no"}
    else:
        json_output = bool(section.get("json", True))
    _APPLIED.update(level=level, json=json_output)
    for logger in list(_CONFIGURED.values()):
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        for handler in logger.handlers:
            handler.setFormatter(_formatter(json_output))


def get_logger(name: Optional[str] = None) -> Logger:
    """Return a configured logger."""
    return configure_logger(name or DEFAULT_LOGGER_NAME)
