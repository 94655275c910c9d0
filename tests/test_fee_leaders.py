import pytest

from swap_metrics.core.aggregation.engine import EngineOptions
from swap_metrics.core.aggregation.fee_leaders import (
    FeeLeadersEngine,
    UserLists,
    fetch_user_lists,
    get_user_tier,
)

from tests.helpers import NOW, FakeSession, ListSource, StaticPrices, ago, evt, make_response

LISTS_URL = "https://users.test/v1/npro/users"
PRICES = {"usd-coin": "1", "near": "2.5"}
LISTS = UserLists(premium=frozenset({"alice.near"}), ambassador=frozenset({"bob.near"}))


def run(events, lists=LISTS, sleeps=None, **kwargs):
    engine = FeeLeadersEngine(
        ListSource(events),
        StaticPrices(PRICES),
        user_lists_fetcher=lambda: lists,
        options=EngineOptions(page_size=2),
        clock=lambda: NOW,
        sleep=(sleeps if sleeps is not None else []).append,
        **kwargs,
    )
    return engine.run()


def test_fetch_user_lists_lowercases_ids():
    session = FakeSession({LISTS_URL: [make_response(json_body={
        "premium": {"addresses": ["Alice.NEAR", "carol.near"]},
        "ambassador": {"addresses": ["bob.near"]},
    })]})
    lists = fetch_user_lists(LISTS_URL, session=session, timeout=3)
    assert lists.premium == {"alice.near", "carol.near"}
    assert lists.ambassador == {"bob.near"}
    assert session.calls[0][2]["timeout"] == 3


@pytest.mark.parametrize(
    "reply",
    [make_response(503, text="down"), make_response(text="not json"), make_response(json_body={"premium": None})],
)
def test_fetch_user_lists_failures_yield_empty_lists(reply):
    lists = fetch_user_lists(LISTS_URL, session=FakeSession({LISTS_URL: [reply]}))
    assert lists == UserLists()


def test_get_user_tier():
    lists = UserLists(premium=frozenset({"p.near", "both.near"}), ambassador=frozenset({"a.near", "both.near"}))
    assert get_user_tier("P.near", lists) == "premium"
    assert get_user_tier("a.near", lists) == "ambassador"
    assert get_user_tier("both.near", lists) == "premium"
    assert get_user_tier("x.near", lists) == "basic"


def test_fees_by_tier():
    events = [
        evt(account="alice.near", amount_in="1000"),
        evt(account="bob.near", amount_in="1000"),
        evt(account="carol.near", amount_in="1000", ts=ago(days=40)),
        evt(account="dave.near", token_in="near-native", token_out="intents:near", amount_in="400"),
        evt(account=None, amount_in="1000"),
        evt(account="erin.near", token_out=None, amount_in="1000"),
    ]
    report = run(events)

    board = report["leaderboards"]["allTime"]
    assert [r["accountId"] for r in board] == ["carol.near", "bob.near", "alice.near"]
    assert board[0] == {
        "accountId": "carol.near",
        "tier": "basic",
        "feesPaid": "8.80",
        "volumeUSD": "1000.00",
        "swaps": 1,
    }
    assert board[1]["feesPaid"] == "6.60"
    assert board[2]["feesPaid"] == "2.20"

    assert [r["accountId"] for r in report["leaderboards"]["last30d"]] == ["bob.near", "alice.near"]

    assert report["totals"]["allTime"] == {
        "basic": "8.80",
        "premium": "2.20",
        "ambassador": "6.60",
        "total": "17.60",
    }
    assert report["totals"]["last24h"]["basic"] == "0.00"
    assert report["totals"]["last24h"]["total"] == "8.80"
    assert report["userCounts"] == {"premium": 1, "ambassador": 1}
    assert report["feeRates"] == {"basic": "0.88%", "ambassador": "0.66%", "premium": "0.22%"}
    assert report["generatedAt"] == NOW.isoformat()


def test_unpriced_events_are_reported_and_skipped():
    report = run([evt(token_in="intents:eth"), evt(amount_in="-3"), evt(token_in="xyz:unknown")])
    assert report["leaderboards"]["allTime"] == []
    assert report["notes"] == {
        "unmappedIntentTokenIds": ["xyz:unknown"],
        "priceIdMissing": ["ethereum"],
        "badAmounts": 1,
    }


def test_leaderboard_top_n():
    events = [evt(account=f"u{i}.near", amount_in=str(10 * (i + 1))) for i in range(5)]
    report = run(events, lists=UserLists(), top_n=3)
    assert [r["accountId"] for r in report["leaderboards"]["allTime"]] == ["u4.near", "u3.near", "u2.near"]
    assert report["totals"]["allTime"]["basic"] == "1.32"


def test_pages_are_throttled():
    sleeps = []
    engine = FeeLeadersEngine(
        ListSource([evt() for _ in range(6)]),
        StaticPrices(PRICES),
        options=EngineOptions(page_size=1, throttle_every_pages=5, throttle_delay_sec=0.25),
        clock=lambda: NOW,
        sleep=sleeps.append,
    )
    engine.run()
    assert sleeps == [0.25]


def test_oversized_amounts_do_not_abort_the_run():
    report = run([evt(account="carol.near", amount_in="1e400"), evt(account="carol.near", amount_in="1000")])
    (row,) = report["leaderboards"]["allTime"]
    assert row["feesPaid"] == "8.80"
    assert row["swaps"] == 1
    assert report["notes"]["badAmounts"] == 1
