"""Construct stores and the scheduler from settings."""
from __future__ import annotations

from typing import Any, Dict, Optional

from reporting.scheduler import ReportScheduler
from reporting.store import LocalOrderStore, OrderStore
from utils.config import ConfigurationError, load_settings
from utils.logging import get_logger

LOGGER = get_logger(__name__)


def build_store(settings: Dict[str, Any]) -> OrderStore:
    backend = settings.get("store", {}).get("backend", "local")
    if backend == "supabase":
        from connectors.supabase_store import SupabaseOrderStore

        LOGGER.info("Using hosted order store")
        return SupabaseOrderStore.from_settings(settings)
    if backend == "local":
        path = settings.get("store", {}).get("path", "data/order_reports.json")
        LOGGER.info("Using local order store at %s", path)
        return LocalOrderStore(path)
    raise ConfigurationError(f"Unknown store backend: {backend!r}")


def build_scheduler(
    settings: Optional[Dict[str, Any]] = None,
    store: Optional[OrderStore] = None,
) -> ReportScheduler:
    settings = settings or load_settings()
    return ReportScheduler.from_settings(store or build_store(settings), settings)
