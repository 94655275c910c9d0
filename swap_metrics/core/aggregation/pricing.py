"""Turn one swap event into a USD volume, or record why it cannot be priced."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation, Overflow
from typing import Callable, Iterable, Optional

from swap_metrics.core.models import Diagnostics, SwapEvent
from swap_metrics.core.prices import UNIT_CORRECTIONS, PriceTable, UnitCorrection, apply_unit_corrections
from swap_metrics.core.tokens import normalize_token_id, resolve_price_id

logger = logging.getLogger(__name__)

EMPTY_TOKEN_ID = "(empty)"

# Largest accepted power of ten for an amount or a USD volume; larger values
# count as bad amounts.
MAX_MAGNITUDE = 40


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """Exact, finite, strictly positive amount or ``None``."""
    if raw is None:
        return None
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount <= 0 or amount.adjusted() > MAX_MAGNITUDE:
        return None
    return amount


class EventPricer:
    def __init__(
        self,
        prices: PriceTable,
        diagnostics: Diagnostics,
        side: str = "in",
        corrections: Iterable[UnitCorrection] = UNIT_CORRECTIONS,
        resolve: Callable[[Optional[str]], Optional[str]] = resolve_price_id,
    ):
        if side not in ("in", "out"):
            raise ValueError(f"side must be 'in' or 'out', got {side!r}")
        self.prices = prices
        self.diagnostics = diagnostics
        self.side = side
        self.corrections = tuple(corrections)
        self.resolve = resolve

    def price(self, event: SwapEvent) -> Optional[Decimal]:
        """
        USD volume of the valued leg of ``event``.

        Returns ``None`` after recording exactly one diagnostic when the amount is
        bad, the token is unmapped, or the price is missing.
        """
        raw_amount, token_id = event.valued_leg(self.side)

        amount = parse_amount(raw_amount)
        if amount is None:
            self.diagnostics.bad_amount_count += 1
            logger.debug("Bad amount %r on event %s", raw_amount, event.id)
            return None

        price_id = self.resolve(token_id)
        if price_id is None:
            self.diagnostics.unmapped_token_ids.add(normalize_token_id(token_id) or EMPTY_TOKEN_ID)
            logger.debug("Unmapped token %r on event %s", token_id, event.id)
            return None

        price = self.prices.get(price_id)
        if price is None:
            self.diagnostics.missing_price_ids.add(price_id)
            logger.debug("No price for %s on event %s", price_id, event.id)
            return None

        try:
            volume_usd = apply_unit_corrections(price_id, event.timestamp, amount * price, self.corrections)
        except (Overflow, InvalidOperation):
            volume_usd = None
        if volume_usd is None or not volume_usd.is_finite() or volume_usd.adjusted() > MAX_MAGNITUDE:
            self.diagnostics.bad_amount_count += 1
            logger.debug("Volume out of range for %r x %s on event %s", raw_amount, price, event.id)
            return None
        return volume_usd
