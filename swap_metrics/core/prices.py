"""
USD price table for a run.

The internal prices API is queried once; a handful of ids it is known to miss
are then looked up on CoinGecko. The resulting table is read-only for the rest
of the run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

import requests

from swap_metrics.core.errors import PriceSourceError

logger = logging.getLogger(__name__)

PriceTable = Mapping[str, Decimal]

COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price"

# internal price id -> CoinGecko id
COINGECKO_FALLBACK_IDS: Dict[str, str] = {
    "kaito": "kaito",
    "matic-network": "polygon-ecosystem-token",
    "kat": "nearkat",
    "npro": "npro",
    "public-ai": "publicai",
    "rhea": "rhea-2",
    "itlx": "intellex",
}


def to_decimal(value) -> Optional[Decimal]:
    """Finite Decimal from a JSON scalar, or ``None``."""
    if value is None or isinstance(value, bool):
        return None
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


# ---------------- Unit corrections ----------------

@dataclass(frozen=True)
class UnitCorrection:
    """Multiply volumes of ``price_id`` recorded strictly before ``cutover``."""
    price_id: str
    cutover: datetime
    multiplier: Decimal


UNIT_CORRECTIONS: Sequence[UnitCorrection] = (
    # TON amounts were reported with 3 extra decimals until the 2026-02-05 fix.
    UnitCorrection("the-open-network", datetime(2026, 2, 5, tzinfo=timezone.utc), Decimal("0.001")),
)


def apply_unit_corrections(
    price_id: str,
    timestamp: Optional[datetime],
    volume_usd: Decimal,
    corrections: Iterable[UnitCorrection] = UNIT_CORRECTIONS,
) -> Decimal:
    if timestamp is None:
        return volume_usd
    for corr in corrections:
        if corr.price_id == price_id and timestamp < corr.cutover:
            volume_usd = volume_usd * corr.multiplier
    return volume_usd


# ---------------- Cache ----------------

class PriceCache:
    """Holds one price table for ``ttl_seconds`` of the injected clock."""

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._table: Optional[PriceTable] = None
        self._stored_at: Optional[float] = None

    def get(self) -> Optional[PriceTable]:
        if self._table is None or self._stored_at is None:
            return None
        if self._clock() - self._stored_at >= self.ttl_seconds:
            return None
        return self._table

    def put(self, table: PriceTable) -> None:
        self._table = table
        self._stored_at = self._clock()

    def clear(self) -> None:
        self._table = None
        self._stored_at = None


# ---------------- Resolver ----------------

class PriceResolver:
    def __init__(
        self,
        prices_api_url: str,
        session: Optional[requests.Session] = None,
        fallback_url: str = COINGECKO_URL,
        fallback_ids: Mapping[str, str] = COINGECKO_FALLBACK_IDS,
        timeout: float = 20.0,
        fallback_timeout: float = 10.0,
        cache: Optional[PriceCache] = None,
    ):
        self.prices_api_url = prices_api_url
        self.session = session or requests.Session()
        self.fallback_url = fallback_url
        self.fallback_ids = dict(fallback_ids)
        self.timeout = timeout
        self.fallback_timeout = fallback_timeout
        self.cache = cache

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None,
                      cache: Optional[PriceCache] = None) -> "PriceResolver":
        return cls(
            settings.prices_api_url,
            session=session,
            fallback_url=settings.coingecko_url,
            timeout=settings.prices_timeout_sec,
            fallback_timeout=settings.fallback_timeout_sec,
            cache=cache,
        )

    def fetch_all(self) -> PriceTable:
        if self.cache is not None:
            cached = self.cache.get()
            if cached is not None:
                logger.debug("Using cached price table (%d ids)", len(cached))
                return cached

        prices = self._fetch_primary()

        missing = {pid: cg for pid, cg in self.fallback_ids.items() if pid not in prices}
        if missing:
            logger.info("Fetching %d missing prices from CoinGecko: %s", len(missing), ", ".join(missing))
            found = self._fetch_fallback(list(missing.values()))
            for pid, cg in missing.items():
                if cg in found:
                    prices[pid] = found[cg]
                    logger.info("  ✓ %s price from CoinGecko: $%s", pid, found[cg])

        table: PriceTable = MappingProxyType(prices)
        if self.cache is not None:
            self.cache.put(table)
        return table

    def _fetch_primary(self) -> Dict[str, Decimal]:
        try:
            r = self.session.get(self.prices_api_url, timeout=self.timeout)
            r.raise_for_status()
            rows = r.json(parse_float=Decimal)
        except (requests.RequestException, ValueError) as exc:
            raise PriceSourceError(f"Price feed {self.prices_api_url} unavailable: {exc}") from exc
        if not isinstance(rows, list):
            raise PriceSourceError(f"Price feed {self.prices_api_url} returned {type(rows).__name__}, expected a list")

        prices: Dict[str, Decimal] = {}
        for row in rows:
            if not isinstance(row, dict) or not row.get("id"):
                continue
            price = to_decimal(row.get("usdPrice"))
            if price is not None:
                prices[str(row["id"])] = price
        return prices

    def _fetch_fallback(self, coingecko_ids: Sequence[str]) -> Dict[str, Decimal]:
        if not coingecko_ids:
            return {}
        try:
            r = self.session.get(
                self.fallback_url,
                params={"ids": ",".join(coingecko_ids), "vs_currencies": "usd"},
                timeout=self.fallback_timeout,
            )
            r.raise_for_status()
            data = r.json(parse_float=Decimal)
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Failed to fetch prices from CoinGecko: %s", exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("CoinGecko returned %s, expected an object", type(data).__name__)
            return {}

        out: Dict[str, Decimal] = {}
        for cg_id, payload in data.items():
            price = to_decimal(payload.get("usd")) if isinstance(payload, dict) else None
            if price:
                out[cg_id] = price
        return out
