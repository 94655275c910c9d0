from decimal import Decimal

from swap_metrics.core.aggregation.report import growth_percent, rank, round2, usd, usd_str, window_summary
from swap_metrics.core.models import WindowAccumulator


def test_growth_percent():
    assert growth_percent(1, 1) == 0.0
    assert growth_percent(3, 2) == 50.0
    assert growth_percent(Decimal(1), Decimal(3)) == -66.67
    assert growth_percent(0, 4) == -100.0


def test_growth_from_zero_is_indeterminate():
    assert growth_percent(500, 0) is None
    assert growth_percent(0, 0) is None


def test_rounding_is_half_up():
    assert round2(Decimal("0.005")) == Decimal("0.01")
    assert round2(Decimal("2.675")) == Decimal("2.68")
    assert usd(Decimal("249.999")) == 250.0
    assert usd_str(Decimal("2.5")) == "2.50"
    assert usd_str(0) == "0.00"


def test_rank_ties_keep_first_seen_order():
    items = [("a", 1), ("b", 2), ("c", 2), ("d", 0)]
    ranked = rank(items, key=lambda x: x[1], top_n=3)
    assert [x[0] for x in ranked] == ["b", "c", "a"]


def test_rank_filter_applies_before_truncation():
    items = [("a", 5), ("b", 0), ("c", 3)]
    ranked = rank(items, key=lambda x: x[1], top_n=2, keep=lambda x: x[1] > 0)
    assert [x[0] for x in ranked] == ["a", "c"]


def test_window_summary():
    cur, prev = WindowAccumulator(), WindowAccumulator()
    cur.add(Decimal("500"))
    out = window_summary(cur, prev)
    assert out == {
        "totalSwaps": 1,
        "totalVolumeUSD": 500.0,
        "swapGrowthPercent": None,
        "volumeGrowthPercent": None,
    }
