"""
engine.py — single-pass swap metrics
------------------------------------

One run:
  1) fetch the price table once and fix the window boundaries from one ``now``;
  2) page through swap events oldest-first;
  3) price each event exactly once and fold it into every accumulator it
     belongs to (all-time, current/previous windows, trading pair, account and
     the fee-eligible variants that skip native <-> intent conversions);
  4) turn the accumulators into the report.

Each call to ``run()`` builds fresh state, so concurrent runs never share
accumulators. Page-fetch failures that survive the source's retries abort the
run; no partial report is ever returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, localcontext
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from swap_metrics.core.aggregation.pricing import EventPricer
from swap_metrics.core.aggregation.report import summary, top_pairs, top_swappers, window_summary
from swap_metrics.core.aggregation.stream import EventSource, stream_events
from swap_metrics.core.aggregation.windows import TimeWindows
from swap_metrics.core.models import (
    WINDOW_KEYS,
    AccountAccumulator,
    Diagnostics,
    PairAccumulator,
    SwapEvent,
    WindowAccumulator,
)
from swap_metrics.core.harvesters.hogql_source import HogQLEventSource
from swap_metrics.core.prices import UNIT_CORRECTIONS, PriceCache, PriceResolver, PriceTable, UnitCorrection
from swap_metrics.core.tokens import is_equivalent_pair

logger = logging.getLogger(__name__)

# Enough digits for 24-decimal on-chain amounts times prices without rounding.
DECIMAL_PRECISION = 78


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EngineOptions:
    volume_side: str = "in"
    page_size: int = 500
    max_events: int = 0
    top_n: int = 30
    throttle_every_pages: int = 5
    throttle_delay_sec: float = 0.5

    @classmethod
    def from_settings(cls, settings) -> "EngineOptions":
        return cls(
            volume_side=settings.volume_side,
            page_size=settings.batch_size,
            max_events=settings.max_events,
            top_n=settings.top_n,
            throttle_every_pages=settings.throttle_every_pages,
            throttle_delay_sec=settings.throttle_delay_sec,
        )


def _windows() -> Dict[str, WindowAccumulator]:
    return {key: WindowAccumulator() for key in WINDOW_KEYS}


@dataclass
class MetricsState:
    """Every accumulator of one run."""
    windows: TimeWindows
    all_time: WindowAccumulator = field(default_factory=WindowAccumulator)
    current: Dict[str, WindowAccumulator] = field(default_factory=_windows)
    previous: Dict[str, WindowAccumulator] = field(default_factory=_windows)
    fee_all_time: WindowAccumulator = field(default_factory=WindowAccumulator)
    fee_current: Dict[str, WindowAccumulator] = field(default_factory=_windows)
    pairs: Dict[Tuple[str, str], PairAccumulator] = field(default_factory=dict)
    fee_pairs: Dict[Tuple[str, str], PairAccumulator] = field(default_factory=dict)
    accounts: Dict[str, AccountAccumulator] = field(default_factory=dict)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    events_seen: int = 0

    def pair(self, book: Dict[Tuple[str, str], PairAccumulator], key: Tuple[str, str]) -> PairAccumulator:
        acc = book.get(key)
        if acc is None:
            acc = book[key] = PairAccumulator(*key)
        return acc

    def account(self, account_id: str) -> AccountAccumulator:
        acc = self.accounts.get(account_id)
        if acc is None:
            acc = self.accounts[account_id] = AccountAccumulator(account_id)
        return acc

    def fold(self, event: SwapEvent, volume_usd: Decimal) -> None:
        placement = self.windows.place(event.timestamp)

        self.all_time.add(volume_usd)
        for key in placement.current:
            self.current[key].add(volume_usd)
        for key in placement.previous:
            self.previous[key].add(volume_usd)

        pair_key = event.pair
        fee_eligible = pair_key is not None and not is_equivalent_pair(*pair_key)

        if pair_key is not None:
            books = [self.pairs, self.fee_pairs] if fee_eligible else [self.pairs]
            for book in books:
                acc = self.pair(book, pair_key)
                acc.total.add(volume_usd)
                for key in placement.current:
                    acc.windows[key].add(volume_usd)

        if fee_eligible:
            self.fee_all_time.add(volume_usd)
            for key in placement.current:
                self.fee_current[key].add(volume_usd)

        if event.account_id:
            acct = self.account(event.account_id)
            acct.total.add(volume_usd)
            for key in placement.current:
                acct.windows[key].add(volume_usd)
            if fee_eligible:
                acct.fee.add(volume_usd)


class SwapMetricsEngine:
    def __init__(
        self,
        source: EventSource,
        price_resolver,
        options: EngineOptions = EngineOptions(),
        clock: Callable[[], datetime] = utc_now,
        sleep: Optional[Callable[[float], None]] = None,
        corrections: Iterable[UnitCorrection] = UNIT_CORRECTIONS,
        progress=None,
    ):
        self.source = source
        self.price_resolver = price_resolver
        self.options = options
        self.clock = clock
        self.sleep = sleep
        self.corrections = tuple(corrections)
        self.progress = progress

    def run(self) -> Dict[str, Any]:
        prices = self.price_resolver.fetch_all()
        with localcontext() as ctx:
            ctx.prec = DECIMAL_PRECISION
            state = self.aggregate(prices, TimeWindows.starting_at(self.clock()))
            return self.build_report(state)

    def aggregate(self, prices: PriceTable, windows: TimeWindows) -> MetricsState:
        opts = self.options
        state = MetricsState(windows=windows)
        pricer = EventPricer(prices, state.diagnostics, side=opts.volume_side, corrections=self.corrections)

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
            state.events_seen += 1
            volume_usd = pricer.price(event)
            if volume_usd is not None:
                state.fold(event, volume_usd)
            if self.progress is not None:
                self.progress.update(1)

        diags = state.diagnostics
        logger.info(
            "Processed %d events: %d priced, %d bad amounts, %d unmapped token ids, %d price ids missing",
            state.events_seen, state.all_time.swaps, diags.bad_amount_count,
            len(diags.unmapped_token_ids), len(diags.missing_price_ids),
        )
        return state

    def build_report(self, state: MetricsState) -> Dict[str, Any]:
        top_n = self.options.top_n
        fee_swaps: Dict[str, Any] = {"allTime": summary(state.fee_all_time)}
        for key in WINDOW_KEYS:
            fee_swaps[f"last{key}"] = summary(state.fee_current[key])
        fee_swaps["topPairs"] = top_pairs(state.fee_pairs.values(), top_n)

        report: Dict[str, Any] = {
            "sideValued": self.options.volume_side,
            "generatedAt": state.windows.now.isoformat(),
            "eventsProcessed": state.events_seen,
            "allTime": summary(state.all_time),
        }
        for key in WINDOW_KEYS:
            report[f"last{key}"] = window_summary(state.current[key], state.previous[key])
            report[f"previous{key}"] = summary(state.previous[key])
        report["topTradingPairs"] = top_pairs(state.pairs.values(), top_n)
        report["feeSwaps"] = fee_swaps
        report["topSwappers"] = top_swappers(state.accounts.values(), top_n)
        report["notes"] = state.diagnostics.as_notes()
        return report


def get_swap_metrics(settings, session=None, price_cache: Optional[PriceCache] = None,
                     progress=None) -> Dict[str, Any]:
    """Build live collaborators from ``settings`` and run one aggregation."""
    settings.require_live_sources()
    engine = SwapMetricsEngine(
        HogQLEventSource.from_settings(settings, session=session),
        PriceResolver.from_settings(settings, session=session, cache=price_cache),
        options=EngineOptions.from_settings(settings),
        progress=progress,
    )
    return engine.run()
