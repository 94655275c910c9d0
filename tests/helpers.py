"""Builders and fakes shared by the test modules. No network access."""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import requests
from requests.structures import CaseInsensitiveDict

from swap_metrics.core.models import SwapEvent

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def ago(**kwargs) -> datetime:
    return NOW - timedelta(**kwargs)


def make_response(status=200, json_body=None, text=None, headers=None, url="https://test.local/"):
    r = requests.Response()
    r.status_code = status
    r.reason = "OK" if status < 400 else "Error"
    r.url = url
    r.encoding = "utf-8"
    r.headers = CaseInsensitiveDict(headers or {})
    if json_body is not None:
        r._content = json.dumps(json_body).encode("utf-8")
        r.headers.setdefault("Content-Type", "application/json")
    else:
        r._content = (text or "").encode("utf-8")
    return r


def http_error(status, body="", headers=None):
    return requests.HTTPError(f"{status} Error", response=make_response(status, text=body, headers=headers))


class FakeSession:
    """
    Stands in for ``requests.Session``. ``routes`` maps a URL to the queue of
    responses (or exceptions to raise) for successive calls to it.
    """

    def __init__(self, routes=None):
        self.routes = {url: list(items) for url, items in (routes or {}).items()}
        self.calls = []

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        queue = self.routes.get(url)
        if not queue:
            raise AssertionError(f"unexpected {method} {url}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)

    def calls_to(self, url):
        return [c for c in self.calls if c[1] == url]


def evt(
    token_in="intents:usdc",
    token_out="intents:near",
    amount_in="100",
    amount_out="40",
    account="alice.near",
    ts=None,
    id=None,
):
    return SwapEvent(
        id=id or f"evt-{token_in}-{token_out}-{amount_in}-{account}-{ts}",
        timestamp=ago(hours=1) if ts is None else ts,
        account_id=account,
        token_in_id=token_in,
        token_out_id=token_out,
        amount_in=amount_in,
        amount_out=amount_out,
    )


class ListSource:
    """Serves pages out of an in-memory event list, oldest first."""

    def __init__(self, events, fail_at_offset=None, error=None):
        self.events = list(events)
        self.fail_at_offset = fail_at_offset
        self.error = error
        self.requests = []

    def fetch_page(self, offset, limit):
        self.requests.append((offset, limit))
        if self.fail_at_offset is not None and offset >= self.fail_at_offset:
            raise self.error
        return self.events[offset:offset + limit]


class StaticPrices:
    def __init__(self, table):
        self.table = {k: Decimal(str(v)) for k, v in table.items()}
        self.calls = 0

    def fetch_all(self):
        self.calls += 1
        return self.table


class Counter:
    def __init__(self):
        self.n = 0

    def update(self, k=1):
        self.n += k


class FakeClock:
    def __init__(self, t=1000.0):
        self.t = t

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds
