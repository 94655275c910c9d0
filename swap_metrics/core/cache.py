"""
Report cache: a short-lived in-memory copy backed by a JSON file.

The file copy survives restarts and is served when a fresh computation fails.
A file copy served that way is kept in memory for only one more minute, so the
next request soon retries the upstream sources.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from typing import Any, Callable, Dict, Optional

import requests

from swap_metrics.core.errors import SwapMetricsError

logger = logging.getLogger(__name__)

STALE_GRACE_SEC = 60.0


def atomic_write_json(path: str, payload: Dict[str, Any]):
    d = os.path.dirname(os.path.abspath(path)) or "."
    os.makedirs(d, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".cache_", dir=d, text=True)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp, path)
    except Exception:
        try:
            os.remove(tmp)
        except OSError:
            pass
        raise


class ReportCache:
    def __init__(self, path: Optional[str], ttl_seconds: float = 300.0, clock: Callable[[], float] = time.time):
        self.path = path
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._data: Optional[Dict[str, Any]] = None
        self._stored_at: Optional[float] = None

    def get(self) -> Optional[Dict[str, Any]]:
        if self._data is None or self._stored_at is None:
            return None
        if self._clock() - self._stored_at >= self.ttl_seconds:
            return None
        return self._data

    def store(self, data: Dict[str, Any]) -> None:
        self._data = data
        self._stored_at = self._clock()
        if not self.path:
            return
        try:
            atomic_write_json(self.path, data)
            logger.info("Saved report cache to %s", self.path)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to save report cache %s: %s", self.path, exc)

    def load_file(self) -> Optional[Dict[str, Any]]:
        if not self.path or not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Failed to load report cache %s: %s", self.path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring report cache %s: expected a JSON object", self.path)
            return None
        return data

    def mark_stale(self, data: Dict[str, Any]) -> None:
        """Keep ``data`` in memory until ``STALE_GRACE_SEC`` from now."""
        self._data = data
        self._stored_at = self._clock() - self.ttl_seconds + min(STALE_GRACE_SEC, self.ttl_seconds)


def cached_report(compute: Callable[[], Dict[str, Any]], cache: ReportCache) -> Dict[str, Any]:
    data = cache.get()
    if data is not None:
        logger.info("Using in-memory report cache")
        return data

    try:
        data = compute()
    except (SwapMetricsError, requests.RequestException) as exc:
        logger.error("Error computing report: %s", exc)
        fallback = cache.load_file()
        if fallback is None:
            raise
        logger.warning("Serving file cache %s after failed computation", cache.path)
        cache.mark_stale(fallback)
        return fallback

    cache.store(data)
    return data
