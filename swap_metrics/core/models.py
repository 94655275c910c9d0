"""
Records shared by the event source and the aggregation engine.

Accumulators are mutable and owned by exactly one run; events are immutable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Set

from swap_metrics.core.tokens import normalize_token_id

WINDOW_KEYS = ("24h", "7d", "30d")


@dataclass(frozen=True)
class SwapEvent:
    id: str
    timestamp: Optional[datetime]
    account_id: Optional[str]
    token_in_id: Optional[str]
    token_out_id: Optional[str]
    amount_in: Optional[str]
    amount_out: Optional[str]

    def valued_leg(self, side: str):
        """Return ``(amount, token_id)`` for the leg selected by ``side``."""
        if side == "in":
            return self.amount_in, self.token_in_id
        return self.amount_out, self.token_out_id

    @property
    def pair(self) -> Optional[tuple]:
        """Normalized ``(token_in, token_out)``, or ``None`` unless both ids are set."""
        token_in = normalize_token_id(self.token_in_id)
        token_out = normalize_token_id(self.token_out_id)
        if token_in and token_out:
            return (token_in, token_out)
        return None


@dataclass
class WindowAccumulator:
    swaps: int = 0
    volume_usd: Decimal = field(default_factory=Decimal)

    def add(self, volume_usd: Decimal) -> None:
        self.swaps += 1
        self.volume_usd += volume_usd


def _window_map() -> Dict[str, WindowAccumulator]:
    return {key: WindowAccumulator() for key in WINDOW_KEYS}


@dataclass
class PairAccumulator:
    token_in_id: str
    token_out_id: str
    total: WindowAccumulator = field(default_factory=WindowAccumulator)
    windows: Dict[str, WindowAccumulator] = field(default_factory=_window_map)

    @property
    def label(self) -> str:
        return f"{self.token_in_id} → {self.token_out_id}"


@dataclass
class AccountAccumulator:
    account_id: str
    total: WindowAccumulator = field(default_factory=WindowAccumulator)
    fee: WindowAccumulator = field(default_factory=WindowAccumulator)
    windows: Dict[str, WindowAccumulator] = field(default_factory=_window_map)


@dataclass
class Diagnostics:
    unmapped_token_ids: Set[str] = field(default_factory=set)
    missing_price_ids: Set[str] = field(default_factory=set)
    bad_amount_count: int = 0

    def as_notes(self) -> Dict[str, object]:
        return {
            "unmappedIntentTokenIds": sorted(self.unmapped_token_ids),
            "priceIdMissing": sorted(self.missing_price_ids),
            "badAmounts": self.bad_amount_count,
        }
