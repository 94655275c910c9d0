"""
Page through the event source oldest-first, one page at a time.

Only the current page is held in memory. A short page ends the stream; so does
the optional ``max_events`` ceiling. Every ``throttle_every`` pages the loop
pauses for ``throttle_delay`` seconds to stay under the upstream rate limit.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterator, List, Protocol

from swap_metrics.core.models import SwapEvent

logger = logging.getLogger(__name__)


class EventSource(Protocol):
    def fetch_page(self, offset: int, limit: int) -> List[SwapEvent]:
        ...


def stream_events(
    source: EventSource,
    page_size: int,
    max_events: int = 0,
    throttle_every: int = 5,
    throttle_delay: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[SwapEvent]:
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    offset = 0
    pages = 0
    emitted = 0
    while True:
        if max_events and emitted >= max_events:
            return
        if pages and throttle_every and throttle_delay and pages % throttle_every == 0:
            logger.debug("Pausing %.2fs after %d pages", throttle_delay, pages)
            sleep(throttle_delay)

        page = source.fetch_page(offset, page_size)
        pages += 1
        if not page:
            return

        for event in page:
            if max_events and emitted >= max_events:
                return
            yield event
            emitted += 1

        offset += len(page)
        if len(page) < page_size:
            return
