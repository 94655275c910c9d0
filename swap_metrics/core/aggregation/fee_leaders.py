"""
fee_leaders.py — who paid the most swap fees
--------------------------------------------

Fees accrue only on real swaps: the event needs an account and both token ids,
and native <-> intent conversions are free. The rate depends on the account's
tier, taken from the public user-list endpoint. That list is fetched alongside
the price table; if it cannot be fetched every account is billed as basic.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

import requests

from swap_metrics.core.aggregation.engine import DECIMAL_PRECISION, EngineOptions, utc_now
from swap_metrics.core.aggregation.pricing import EventPricer
from swap_metrics.core.aggregation.report import rank, usd_str
from swap_metrics.core.aggregation.stream import EventSource, stream_events
from swap_metrics.core.aggregation.windows import TimeWindows
from swap_metrics.core.harvesters.hogql_source import HogQLEventSource
from swap_metrics.core.models import WINDOW_KEYS, Diagnostics
from swap_metrics.core.prices import UNIT_CORRECTIONS, PriceCache, PriceResolver, UnitCorrection
from swap_metrics.core.tokens import is_equivalent_pair

logger = logging.getLogger(__name__)

TIERS = ("basic", "premium", "ambassador")

FEE_RATES: Dict[str, Decimal] = {
    "basic": Decimal("0.0088"),
    "ambassador": Decimal("0.0066"),
    "premium": Decimal("0.0022"),
}

FEE_RATE_LABELS: Dict[str, str] = {
    "basic": "0.88%",
    "ambassador": "0.66%",
    "premium": "0.22%",
}

PERIODS = ("allTime",) + tuple(f"last{k}" for k in WINDOW_KEYS)


@dataclass(frozen=True)
class UserLists:
    premium: FrozenSet[str] = frozenset()
    ambassador: FrozenSet[str] = frozenset()


def _addresses(data: Any, tier: str) -> FrozenSet[str]:
    block = data.get(tier) if isinstance(data, dict) else None
    addresses = block.get("addresses") if isinstance(block, dict) else None
    if not isinstance(addresses, list):
        return frozenset()
    return frozenset(str(a).lower() for a in addresses if a)


def fetch_user_lists(url: str, session: Optional[requests.Session] = None, timeout: float = 10.0) -> UserLists:
    """Premium and ambassador account ids, lower-cased. Empty lists on any failure."""
    session = session or requests.Session()
    try:
        r = session.get(url, timeout=timeout)
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Failed to fetch user lists from %s: %s", url, exc)
        return UserLists()
    return UserLists(premium=_addresses(data, "premium"), ambassador=_addresses(data, "ambassador"))


def get_user_tier(account_id: str, lists: UserLists) -> str:
    lowered = account_id.lower()
    if lowered in lists.premium:
        return "premium"
    if lowered in lists.ambassador:
        return "ambassador"
    return "basic"


@dataclass
class FeeBucket:
    swaps: int = 0
    volume_usd: Decimal = field(default_factory=Decimal)
    fees_usd: Decimal = field(default_factory=Decimal)

    def add(self, volume_usd: Decimal, fee_usd: Decimal) -> None:
        self.swaps += 1
        self.volume_usd += volume_usd
        self.fees_usd += fee_usd


@dataclass
class AccountFees:
    account_id: str
    tier: str
    periods: Dict[str, FeeBucket] = field(default_factory=lambda: {p: FeeBucket() for p in PERIODS})


class FeeLeadersEngine:
    def __init__(
        self,
        source: EventSource,
        price_resolver,
        user_lists_fetcher: Callable[[], UserLists] = UserLists,
        options: EngineOptions = EngineOptions(),
        clock=utc_now,
        sleep=None,
        corrections: Iterable[UnitCorrection] = UNIT_CORRECTIONS,
        top_n: int = 20,
        progress=None,
    ):
        self.source = source
        self.price_resolver = price_resolver
        self.user_lists_fetcher = user_lists_fetcher
        self.options = options
        self.clock = clock
        self.sleep = sleep
        self.corrections = tuple(corrections)
        self.top_n = top_n
        self.progress = progress

    def run(self) -> Dict[str, Any]:
        with ThreadPoolExecutor(max_workers=2) as ex:
            prices_future = ex.submit(self.price_resolver.fetch_all)
            lists_future = ex.submit(self.user_lists_fetcher)
            prices = prices_future.result()
            lists = lists_future.result()
        logger.info("Loaded %d premium and %d ambassador accounts", len(lists.premium), len(lists.ambassador))

        windows = TimeWindows.starting_at(self.clock())
        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            diagnostics = Diagnostics()
            accounts = self._accumulate(prices, lists, windows, diagnostics)
            return self._build_report(accounts, lists, windows, diagnostics)

    def _accumulate(self, prices, lists: UserLists, windows: TimeWindows,
                    diagnostics: Diagnostics) -> Dict[str, AccountFees]:
        opts = self.options
        pricer = EventPricer(prices, diagnostics, side=opts.volume_side, corrections=self.corrections)
        accounts: Dict[str, AccountFees] = {}

        kwargs = {} if self.sleep is None else {"sleep": self.sleep}
        events = stream_events(
            self.source,
            page_size=opts.page_size,
            max_events=opts.max_events,
            throttle_every=opts.throttle_every_pages,
            throttle_delay=opts.throttle_delay_sec,
            **kwargs,
        )
        for event in events:
            if self.progress is not None:
                self.progress.update(1)
            pair = event.pair
            if not event.account_id or pair is None or is_equivalent_pair(*pair):
                continue
            volume_usd = pricer.price(event)
            if volume_usd is None:
                continue

            acct = accounts.get(event.account_id)
            if acct is None:
                acct = accounts[event.account_id] = AccountFees(event.account_id, get_user_tier(event.account_id, lists))
            fee_usd = volume_usd * FEE_RATES[acct.tier]

            acct.periods["allTime"].add(volume_usd, fee_usd)
            for key in windows.place(event.timestamp).current:
                acct.periods[f"last{key}"].add(volume_usd, fee_usd)

        logger.info("Accrued fees for %d accounts", len(accounts))
        return accounts

    def _leaderboard(self, accounts: List[AccountFees], period: str) -> List[Dict[str, Any]]:
        ranked = rank(
            accounts,
            key=lambda a: a.periods[period].fees_usd,
            top_n=self.top_n,
            keep=lambda a: a.periods[period].fees_usd > 0,
        )
        return [
            {
                "accountId": a.account_id,
                "tier": a.tier,
                "feesPaid": usd_str(a.periods[period].fees_usd),
                "volumeUSD": usd_str(a.periods[period].volume_usd),
                "swaps": a.periods[period].swaps,
            }
            for a in ranked
        ]

    def _build_report(self, accounts: Dict[str, AccountFees], lists: UserLists,
                      windows: TimeWindows, diagnostics: Diagnostics) -> Dict[str, Any]:
        pool = list(accounts.values())

        totals: Dict[str, Dict[str, str]] = {}
        for period in PERIODS:
            by_tier = {tier: Decimal(0) for tier in TIERS}
            for a in pool:
                by_tier[a.tier] += a.periods[period].fees_usd
            totals[period] = {tier: usd_str(by_tier[tier]) for tier in TIERS}
            totals[period]["total"] = usd_str(sum(by_tier.values(), Decimal(0)))

        return {
            "leaderboards": {period: self._leaderboard(pool, period) for period in PERIODS},
            "totals": totals,
            "userCounts": {"premium": len(lists.premium), "ambassador": len(lists.ambassador)},
            "feeRates": dict(FEE_RATE_LABELS),
            "notes": diagnostics.as_notes(),
            "generatedAt": windows.now.isoformat(),
        }


def get_fee_leaders(settings, session=None, price_cache: Optional[PriceCache] = None,
                    progress=None) -> Dict[str, Any]:
    settings.require_live_sources()
    engine = FeeLeadersEngine(
        HogQLEventSource.from_settings(settings, session=session),
        PriceResolver.from_settings(settings, session=session, cache=price_cache),
        user_lists_fetcher=lambda: fetch_user_lists(
            settings.user_lists_url, session=session, timeout=settings.user_lists_timeout_sec,
        ),
        options=EngineOptions.from_settings(settings),
        top_n=settings.fee_leaders_top_n,
        progress=progress,
    )
    return engine.run()
