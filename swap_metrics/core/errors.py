"""
Exception hierarchy for swap metrics runs.

A run either completes with a full report or fails with one of these; per-event
problems are never raised, they land in ``Diagnostics`` instead.
"""

from typing import Optional


class SwapMetricsError(Exception):
    """Base class for every fatal error raised by the package."""


class ConfigError(SwapMetricsError, ValueError):
    """Invalid or incomplete configuration."""


class PriceSourceError(SwapMetricsError):
    """The primary price source could not produce a price table."""


class RetriesExhausted(SwapMetricsError):
    """A retryable failure persisted past the attempt ceiling."""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException] = None):
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"{description} failed after {attempts} attempts{detail}")


class EventSourceError(SwapMetricsError):
    """A page of events could not be fetched; the run must be abandoned."""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.offset = offset
        super().__init__(message if offset is None else f"{message} (offset={offset})")
