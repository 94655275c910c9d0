"""
Retry with exponential backoff, shared by every upstream HTTP call.

Which errors are worth retrying is decided by a classifier predicate so the
policy itself stays transport agnostic.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

import requests

from swap_metrics.core.errors import RetriesExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRY_AFTER_SEC = 60.0
TRANSIENT_BODY_SIGNATURES = ("ClickHouse",)


def _response_of(exc: BaseException) -> Optional[requests.Response]:
    response = getattr(exc, "response", None)
    return response if isinstance(response, requests.Response) else None


def is_transient_error(exc: BaseException) -> bool:
    """Timeouts, dropped connections, HTTP 5xx/429 and known backend hiccups."""
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return True
    response = _response_of(exc)
    if response is None:
        return False
    if response.status_code >= 500 or response.status_code == 429:
        return True
    try:
        body = response.text or ""
    except (UnicodeDecodeError, LookupError):
        return False
    return any(sig in body for sig in TRANSIENT_BODY_SIGNATURES)


def retry_after_seconds(exc: BaseException) -> Optional[float]:
    """Server-requested delay for HTTP 429 responses, else ``None``."""
    response = _response_of(exc)
    if response is None or response.status_code != 429:
        return None
    raw = response.headers.get("Retry-After")
    try:
        return max(float(raw), 0.0)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER_SEC


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base: float = 1.0
    is_retryable: Callable[[BaseException], bool] = is_transient_error
    retry_after: Callable[[BaseException], Optional[float]] = retry_after_seconds
    sleep: Callable[[float], None] = time.sleep

    def delay_for(self, attempt: int, exc: BaseException) -> float:
        """Delay before the retry that follows failed ``attempt`` (1-based)."""
        server_delay = self.retry_after(exc)
        if server_delay is not None:
            return server_delay
        return self.backoff_base * (2 ** attempt)

    def call(self, fn: Callable[..., T], *args: Any, description: str = "request", **kwargs: Any) -> T:
        last_exc: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                if not self.is_retryable(exc):
                    raise
                last_exc = exc
                if attempt == self.max_attempts:
                    break
                delay = self.delay_for(attempt, exc)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    description, attempt, self.max_attempts, exc, delay,
                )
                self.sleep(delay)
        raise RetriesExhausted(description, self.max_attempts, last_exc) from last_exc
