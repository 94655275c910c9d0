"""
Report assembly: growth percentages, top-N rankings and display rounding.

All arithmetic stays in ``Decimal``; values are rounded to two places and turned
into floats only when written into the report.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar, Union

from swap_metrics.core.models import AccountAccumulator, PairAccumulator, WindowAccumulator

T = TypeVar("T")

CENT = Decimal("0.01")
Number = Union[int, Decimal]


def round2(value: Number) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def usd(value: Number) -> float:
    return float(round2(value))


def usd_str(value: Number) -> str:
    return str(round2(value))


def growth_percent(current: Number, previous: Number) -> Optional[float]:
    """
    ``(current - previous) / previous * 100`` rounded to 2 places.

    ``None`` whenever ``previous`` is zero: growth from nothing is indeterminate.
    """
    previous = Decimal(previous)
    if previous == 0:
        return None
    return usd((Decimal(current) - previous) / previous * 100)


def rank(items: Iterable[T], key: Callable[[T], Any], top_n: int,
         keep: Optional[Callable[[T], bool]] = None) -> List[T]:
    """Descending by ``key``; ties keep first-seen order."""
    pool = [item for item in items if keep is None or keep(item)]
    return sorted(pool, key=key, reverse=True)[:top_n]


# ---------------- Row shapes ----------------

def summary(acc: WindowAccumulator) -> Dict[str, Any]:
    return {"totalSwaps": acc.swaps, "totalVolumeUSD": usd(acc.volume_usd)}


def window_summary(current: WindowAccumulator, previous: WindowAccumulator) -> Dict[str, Any]:
    out = summary(current)
    out["swapGrowthPercent"] = growth_percent(current.swaps, previous.swaps)
    out["volumeGrowthPercent"] = growth_percent(current.volume_usd, previous.volume_usd)
    return out


def pair_row(pair: PairAccumulator, window: Optional[str] = None) -> Dict[str, Any]:
    row = {
        "pair": pair.label,
        "tokenInId": pair.token_in_id,
        "tokenOutId": pair.token_out_id,
        "totalSwaps": pair.total.swaps,
        "totalVolumeUSD": usd(pair.total.volume_usd),
    }
    if window is None or window == "24h":
        w = pair.windows["24h"]
        row["last24hSwaps"] = w.swaps
        row["last24hVolumeUSD"] = usd(w.volume_usd)
    else:
        w = pair.windows[window]
        row["periodSwaps"] = w.swaps
        row["periodVolumeUSD"] = usd(w.volume_usd)
    return row


def account_row(acct: AccountAccumulator) -> Dict[str, Any]:
    row = {
        "accountId": acct.account_id,
        "totalSwaps": acct.total.swaps,
        "totalVolumeUSD": usd(acct.total.volume_usd),
        "feeSwaps": acct.fee.swaps,
        "feeVolumeUSD": usd(acct.fee.volume_usd),
    }
    for key in ("24h", "7d", "30d"):
        row[f"last{key}Swaps"] = acct.windows[key].swaps
        row[f"last{key}VolumeUSD"] = usd(acct.windows[key].volume_usd)
    return row


def top_pairs(pairs: Iterable[PairAccumulator], top_n: int) -> Dict[str, List[Dict[str, Any]]]:
    pairs = list(pairs)
    out = {"allTime": [pair_row(p) for p in rank(pairs, lambda p: p.total.volume_usd, top_n)]}
    for key in ("24h", "7d", "30d"):
        ranked = rank(
            pairs,
            key=lambda p, k=key: p.windows[k].volume_usd,
            top_n=top_n,
            keep=lambda p, k=key: p.windows[k].swaps > 0,
        )
        out[f"last{key}"] = [pair_row(p, key) for p in ranked]
    return out


def top_swappers(accounts: Iterable[AccountAccumulator], top_n: int) -> Dict[str, Any]:
    accounts = list(accounts)

    def rows(ranked):
        return [account_row(a) for a in ranked]

    out: Dict[str, Any] = {
        "byVolume": rows(rank(accounts, lambda a: a.total.volume_usd, top_n)),
        "byCount": rows(rank(accounts, lambda a: a.total.swaps, top_n)),
        "byFeeVolume": rows(rank(accounts, lambda a: a.fee.volume_usd, top_n, keep=lambda a: a.fee.swaps > 0)),
    }
    for key in ("24h", "7d", "30d"):
        out[f"last{key}"] = rows(rank(
            accounts,
            key=lambda a, k=key: a.windows[k].volume_usd,
            top_n=top_n,
            keep=lambda a, k=key: a.windows[k].swaps > 0,
        ))
    out["totalUniqueAccounts"] = len(accounts)
    return out
