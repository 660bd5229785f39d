"""Retry policy and backoff sleeps for calls to the hosted store."""
from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget plus exponential delay bounds, all delays in milliseconds."""

    max_attempts: int = 3
    base_delay_ms: int = 500
    jitter_ms: int = 250
    max_delay_ms: int = 8000

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "RetryPolicy":
        section = settings.get("retry_policy", {})
        policy = cls(**{key: int(value) for key, value in section.items() if key in cls.__dataclass_fields__})
        if policy.max_attempts < 1:
            raise ValueError("retry_policy.max_attempts must be at least 1")
        return policy

    def compute_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt + 1``."""
        capped = min(self.max_delay_ms, self.base_delay_ms * (2**attempt))
        jitter = random.uniform(-self.jitter_ms, self.jitter_ms) if self.jitter_ms else 0.0
        return max(0.0, capped + jitter) / 1000


def sleep_with_backoff(attempt: int, retry_policy: RetryPolicy) -> float:
    delay = retry_policy.compute_delay(attempt)
    time.sleep(delay)
    return delay
