"""Connector base class with HTTP error mapping and retry orchestration."""
from __future__ import annotations

import abc
from functools import wraps
from typing import Any, Callable, Dict, Optional

import requests

from reporting.store import StoreError
from utils.backoff import RetryPolicy, sleep_with_backoff
from utils.config import load_settings
from utils.logging import get_logger


class ConnectorError(StoreError):
    """Generic upstream communication error."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RateLimitError(ConnectorError):
    """Raised when the upstream refuses the request (HTTP 429)."""


class UpstreamError(ConnectorError):
    """Raised for retryable upstream failures (HTTP 5xx, network errors)."""


class BadRequestError(ConnectorError):
    """Raised for non-retryable client issues (HTTP 4xx)."""


def with_retries(operation: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Retry transient failures of a connector method with exponential backoff."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(self: BaseConnector, *args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return func(self, *args, **kwargs)
                except (RateLimitError, UpstreamError) as exc:
                    if attempt >= self.retry_policy.max_attempts - 1:
                        self.logger.error("%s failed after %s attempts: %s", operation, attempt + 1, exc)
                        raise
                    self.logger.warning("Retrying %s after %s (attempt %s)", operation, exc, attempt + 1)
                    sleep_with_backoff(attempt, self.retry_policy)
                    attempt += 1

        return wrapper

    return decorator


class BaseConnector(abc.ABC):
    """Base connector encapsulating shared HTTP behaviour."""

    def __init__(
        self,
        *,
        service_name: str,
        base_url: str,
        settings: Optional[Dict[str, Any]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        self.service_name = service_name
        self.base_url = base_url.rstrip("/")
        self.settings = settings or load_settings()
        self.logger = get_logger(service_name)
        self.retry_policy = RetryPolicy.from_settings(self.settings)
        self.session = session or requests.Session()
        self.timeout = timeout

    def _default_headers(self) -> Dict[str, str]:
        return {}

    def _http_request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_payload: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        merged_headers = {**self._default_headers(), **(headers or {})}
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_payload,
                headers=merged_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"{self.service_name} request failed: {exc}") from exc
        status = getattr(response, "status_code", 500)
        if status == 429:
            raise RateLimitError(f"{self.service_name} rate limited", status=status)
        if 500 <= status:
            raise UpstreamError(f"{self.service_name} upstream failure", status=status)
        if 400 <= status:
            raise BadRequestError(f"{self.service_name} bad request: {getattr(response, 'text', '')}", status=status)
        if status == 204 or not getattr(response, "content", b""):
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError("Invalid JSON response", status=status) from exc

    @abc.abstractmethod
    def healthcheck(self) -> bool:
        """Validate connectivity to the upstream service."""
