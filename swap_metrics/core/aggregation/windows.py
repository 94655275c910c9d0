"""Rolling window boundaries, fixed once per run."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, NamedTuple, Optional, Tuple

from swap_metrics.core.models import WINDOW_KEYS

WINDOW_SIZES: Dict[str, timedelta] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
}


class Placement(NamedTuple):
    current: Tuple[str, ...]
    previous: Tuple[str, ...]


NO_PLACEMENT = Placement((), ())


@dataclass(frozen=True)
class TimeWindows:
    """
    For each window size ``w`` the current window is ``[now - w, ...)`` and the
    previous window is ``[now - 2w, now - w)``. The two never overlap.
    """
    now: datetime
    current_start: Dict[str, datetime]
    previous_start: Dict[str, datetime]

    @classmethod
    def starting_at(cls, now: datetime) -> "TimeWindows":
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        return cls(
            now=now,
            current_start={k: now - WINDOW_SIZES[k] for k in WINDOW_KEYS},
            previous_start={k: now - 2 * WINDOW_SIZES[k] for k in WINDOW_KEYS},
        )

    def place(self, ts: Optional[datetime]) -> Placement:
        if ts is None:
            return NO_PLACEMENT
        current = []
        previous = []
        for key in WINDOW_KEYS:
            if ts >= self.current_start[key]:
                current.append(key)
            elif ts >= self.previous_start[key]:
                previous.append(key)
        return Placement(tuple(current), tuple(previous))
