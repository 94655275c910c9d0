import pytest
import requests

from swap_metrics.core.errors import RetriesExhausted
from swap_metrics.core.retry import RetryPolicy, is_transient_error, retry_after_seconds

from tests.helpers import http_error


class Flaky:
    def __init__(self, failures, result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


def policy(**kwargs):
    sleeps = []
    return RetryPolicy(sleep=sleeps.append, **kwargs), sleeps


def test_transient_classification():
    assert is_transient_error(requests.Timeout())
    assert is_transient_error(requests.ConnectionError())
    assert is_transient_error(http_error(500))
    assert is_transient_error(http_error(503))
    assert is_transient_error(http_error(429))
    assert is_transient_error(http_error(400, body="Code: 241. DB::Exception ClickHouse memory limit"))
    assert not is_transient_error(http_error(400, body="Syntax error"))
    assert not is_transient_error(http_error(401))
    assert not is_transient_error(ValueError("bad json"))


def test_retry_after_seconds():
    assert retry_after_seconds(http_error(429, headers={"Retry-After": "7"})) == 7.0
    assert retry_after_seconds(http_error(429)) == 60.0
    assert retry_after_seconds(http_error(429, headers={"Retry-After": "soon"})) == 60.0
    assert retry_after_seconds(http_error(503)) is None
    assert retry_after_seconds(requests.Timeout()) is None


def test_backoff_then_success():
    p, sleeps = policy(max_attempts=3, backoff_base=1.0)
    fn = Flaky([requests.Timeout(), http_error(502)])
    assert p.call(fn) == "ok"
    assert fn.calls == 3
    assert sleeps == [2.0, 4.0]


def test_rate_limit_waits_for_retry_after():
    p, sleeps = policy(max_attempts=3)
    fn = Flaky([http_error(429, headers={"Retry-After": "7"})])
    assert p.call(fn) == "ok"
    assert sleeps == [7.0]


def test_exhaustion_raises_with_cause():
    p, sleeps = policy(max_attempts=3, backoff_base=0.5)
    fn = Flaky([requests.Timeout()] * 5)
    with pytest.raises(RetriesExhausted) as info:
        p.call(fn, description="PostHog query")
    assert fn.calls == 3
    assert sleeps == [1.0, 2.0]
    assert info.value.attempts == 3
    assert isinstance(info.value.__cause__, requests.Timeout)
    assert "PostHog query failed after 3 attempts" in str(info.value)


def test_non_retryable_error_propagates_immediately():
    p, sleeps = policy(max_attempts=5)
    fn = Flaky([http_error(400, body="bad query")])
    with pytest.raises(requests.HTTPError):
        p.call(fn)
    assert fn.calls == 1
    assert sleeps == []


def test_arguments_are_forwarded():
    p, _ = policy()
    assert p.call(lambda a, b=0: a + b, 2, b=3) == 5
