"""
hogql_source.py — paged swap events from the PostHog query API
--------------------------------------------------------------

Swap events live in PostHog's ``events`` table with the swap details packed in the
JSON ``properties`` column. Each page is one HogQL ``SELECT`` ordered by
timestamp ascending with ``LIMIT``/``OFFSET`` paging; result rows are positional
and are turned into ``SwapEvent`` records right here so nothing downstream
depends on column order.

Every request goes through a ``RetryPolicy``: HTTP 5xx, ClickHouse errors and
timeouts back off exponentially, HTTP 429 waits for ``Retry-After``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import requests

from swap_metrics.core.errors import EventSourceError, RetriesExhausted
from swap_metrics.core.models import SwapEvent
from swap_metrics.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

Q_SWAP_PAGE = """
SELECT
  uuid,
  toString(timestamp) AS timestamp,
  {account_id} AS account_id,
  {amount_in} AS amount_in,
  {amount_out} AS amount_out,
  {token_in_id} AS token_in_id,
  {token_out_id} AS token_out_id
FROM events
WHERE {where}
ORDER BY timestamp ASC
LIMIT {limit} OFFSET {offset}
"""

ROW_COLUMNS = ("uuid", "timestamp", "account_id", "amount_in", "amount_out", "token_in_id", "token_out_id")


def quote(value: str) -> str:
    """HogQL string literal: backslashes escaped, single quotes doubled."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "''")
    return "'" + escaped + "'"


def prop(field: str) -> str:
    return f"JSONExtractString(properties, {quote(field)})"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value)
    return s if s.strip() else None


def parse_timestamp(value: Any):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        ts = pd.to_datetime(value, utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def row_to_swap_event(row: Sequence[Any]) -> SwapEvent:
    """Map one positional result row (see ``ROW_COLUMNS``) to a ``SwapEvent``."""
    if isinstance(row, (str, bytes, dict)):
        raise TypeError(f"Expected a positional row, got {type(row).__name__}")
    # missing trailing columns read as NULL
    padded = list(row)[:len(ROW_COLUMNS)] + [None] * max(0, len(ROW_COLUMNS) - len(row))
    uuid, ts, account_id, amount_in, amount_out, token_in_id, token_out_id = padded
    return SwapEvent(
        id=str(uuid),
        timestamp=parse_timestamp(ts),
        account_id=_text(account_id),
        token_in_id=_text(token_in_id),
        token_out_id=_text(token_out_id),
        amount_in=_text(amount_in),
        amount_out=_text(amount_out),
    )


class HogQLEventSource:
    def __init__(
        self,
        base_url: str,
        project_id: str,
        api_key: str,
        event_name: str = "swap",
        network: str = "mainnet",
        amount_in_prop: str = "amount_in",
        amount_out_prop: str = "amount_out",
        exclude_patterns: Sequence[str] = (),
        exclude_ids: Sequence[str] = (),
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.url = f"{base_url.rstrip('/')}/api/projects/{project_id}/query/"
        self.api_key = api_key
        self.event_name = event_name
        self.network = network
        self.amount_in_prop = amount_in_prop
        self.amount_out_prop = amount_out_prop
        self.exclude_patterns = [p.lower() for p in exclude_patterns]
        self.exclude_ids = list(exclude_ids)
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None,
                      retry_policy: Optional[RetryPolicy] = None) -> "HogQLEventSource":
        settings.require_live_sources()
        return cls(
            settings.posthog_base_url,
            settings.posthog_project_id,
            settings.posthog_api_key,
            event_name=settings.swap_event_name,
            network=settings.network_filter,
            amount_in_prop=settings.volume_prop_in,
            amount_out_prop=settings.volume_prop_out,
            exclude_patterns=settings.exclude_account_id_patterns,
            exclude_ids=settings.exclude_account_ids,
            session=session,
            timeout=settings.request_timeout_sec,
            retry_policy=retry_policy or RetryPolicy(
                max_attempts=settings.max_retries,
                backoff_base=settings.backoff_base_sec,
            ),
        )

    # ---------------- Query building ----------------

    def exclusion_clause(self) -> str:
        clauses = [f"lower({prop('account_id')}) NOT LIKE {quote('%' + p + '%')}" for p in self.exclude_patterns]
        if self.exclude_ids:
            ids = ", ".join(quote(i) for i in self.exclude_ids)
            clauses.append(f"{prop('account_id')} NOT IN ({ids})")
        return " AND ".join(clauses) if clauses else "1"

    def build_query(self, offset: int, limit: int) -> str:
        where = " AND ".join([
            f"event = {quote(self.event_name)}",
            f"{prop('network')} = {quote(self.network)}",
            self.exclusion_clause(),
        ])
        return Q_SWAP_PAGE.format(
            account_id=prop("account_id"),
            amount_in=prop(self.amount_in_prop),
            amount_out=prop(self.amount_out_prop),
            token_in_id=prop("token_in_id"),
            token_out_id=prop("token_out_id"),
            where=where,
            limit=int(limit),
            offset=int(offset),
        )

    # ---------------- HTTP ----------------

    def _post_once(self, query: str) -> Dict[str, Any]:
        r = self.session.post(
            self.url,
            json={"query": {"kind": "HogQLQuery", "query": query}},
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json()

    def query(self, query: str) -> Dict[str, Any]:
        return self.retry_policy.call(self._post_once, query, description="PostHog query")

    def fetch_page(self, offset: int, limit: int) -> List[SwapEvent]:
        if offset < 0 or limit <= 0:
            raise ValueError(f"Invalid page request offset={offset} limit={limit}")
        try:
            data = self.query(self.build_query(offset, limit))
        except (RetriesExhausted, requests.RequestException, ValueError) as exc:
            raise EventSourceError(f"Swap event page fetch failed: {exc}", offset=offset) from exc

        rows = data.get("results") if isinstance(data, dict) else None
        if rows is None:
            rows = []
        if not isinstance(rows, list):
            raise EventSourceError(f"Unexpected 'results' payload of type {type(rows).__name__}", offset=offset)
        try:
            return [row_to_swap_event(row) for row in rows]
        except (TypeError, ValueError) as exc:
            raise EventSourceError(f"Malformed result row: {exc}", offset=offset) from exc
