"""
Configuration loading for swap metrics runs.

Defaults are overlaid with a YAML file (``SWAP_METRICS_CONFIG_PATH``, falling back
to ``parameters_yml/swap_metrics_config.yml``) and then with environment
variables, so the same file can be shared between machines while secrets stay in
the environment.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from swap_metrics.core.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH = os.environ.get("SWAP_METRICS_CONFIG_PATH", "parameters_yml/swap_metrics_config.yml")

DEFAULT_CONFIG: Dict[str, Any] = {
    "posthog_base_url": "https://app.posthog.com",
    "posthog_project_id": None,
    "posthog_api_key": None,
    "swap_event_name": "swap",
    "network_filter": "mainnet",
    "volume_side": "in",
    "volume_prop_in": "amount_in",
    "volume_prop_out": "amount_out",
    "exclude_account_id_patterns": [],
    "exclude_account_ids": [],
    "prices_api_url": None,
    "coingecko_url": "https://api.coingecko.com/api/v3/simple/price",
    "batch_size": 500,
    "max_events": 0,
    "top_n": 30,
    "fee_leaders_top_n": 20,
    "request_timeout_sec": 60.0,
    "prices_timeout_sec": 20.0,
    "fallback_timeout_sec": 10.0,
    "max_retries": 3,
    "backoff_base_sec": 1.0,
    "throttle_every_pages": 5,
    "throttle_delay_sec": 0.5,
    "price_cache_ttl_sec": 300.0,
    "user_lists_url": "https://npro-stats-api-production.up.railway.app/v1/npro/users",
    "user_lists_timeout_sec": 10.0,
    "report_cache_path": "output/fee_leaders_cache.json",
    "report_cache_ttl_sec": 300.0,
}

# Environment variable -> config key
ENV_OVERRIDES: Dict[str, str] = {
    "POSTHOG_BASE_URL": "posthog_base_url",
    "POSTHOG_PROJECT_ID": "posthog_project_id",
    "POSTHOG_API_KEY": "posthog_api_key",
    "SWAP_EVENT_NAME": "swap_event_name",
    "NETWORK_FILTER": "network_filter",
    "VOLUME_SIDE": "volume_side",
    "VOLUME_PROP_IN": "volume_prop_in",
    "VOLUME_PROP_OUT": "volume_prop_out",
    "EXCLUDE_ACCOUNT_ID_PATTERNS": "exclude_account_id_patterns",
    "EXCLUDE_ACCOUNT_IDS": "exclude_account_ids",
    "PRICES_API_URL": "prices_api_url",
    "BATCH_SIZE": "batch_size",
    "MAX_EVENTS": "max_events",
}


@dataclass(frozen=True)
class Settings:
    posthog_base_url: str
    posthog_project_id: Optional[str]
    posthog_api_key: Optional[str]
    swap_event_name: str
    network_filter: str
    volume_side: str
    volume_prop_in: str
    volume_prop_out: str
    exclude_account_id_patterns: Tuple[str, ...]
    exclude_account_ids: Tuple[str, ...]
    prices_api_url: Optional[str]
    coingecko_url: str
    batch_size: int
    max_events: int
    top_n: int
    fee_leaders_top_n: int
    request_timeout_sec: float
    prices_timeout_sec: float
    fallback_timeout_sec: float
    max_retries: int
    backoff_base_sec: float
    throttle_every_pages: int
    throttle_delay_sec: float
    price_cache_ttl_sec: float
    user_lists_url: str
    user_lists_timeout_sec: float
    report_cache_path: str
    report_cache_ttl_sec: float

    def require_live_sources(self) -> None:
        """Raise ``ConfigError`` unless the upstream endpoints are configured."""
        missing = [
            name
            for name in ("posthog_project_id", "posthog_api_key", "prices_api_url")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(f"Missing required config keys: {', '.join(missing)}")

    def replace(self, **changes: Any) -> "Settings":
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update(changes)
        return normalize_config(values)


def parse_csv(value: Any) -> Tuple[str, ...]:
    """Split a comma separated string (or list) into trimmed, non-empty items."""
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return tuple(s for s in (str(item).strip() for item in items) if s)


def _as_int(cfg: Mapping[str, Any], key: str, minimum: int) -> int:
    try:
        value = int(cfg[key])
    except (TypeError, ValueError):
        raise ConfigError(f"Config field {key!r} must be an integer, got {cfg[key]!r}")
    if value < minimum:
        raise ConfigError(f"Config field {key!r} must be >= {minimum}, got {value}")
    return value


def _as_float(cfg: Mapping[str, Any], key: str) -> float:
    try:
        value = float(cfg[key])
    except (TypeError, ValueError):
        raise ConfigError(f"Config field {key!r} must be a number, got {cfg[key]!r}")
    if value < 0:
        raise ConfigError(f"Config field {key!r} must be non-negative, got {value}")
    return value


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def normalize_config(cfg: Mapping[str, Any]) -> Settings:
    unknown = sorted(set(cfg) - set(DEFAULT_CONFIG))
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    side = str(cfg["volume_side"]).strip().lower()
    if side not in ("in", "out"):
        raise ConfigError(f"Config field 'volume_side' must be 'in' or 'out', got {cfg['volume_side']!r}")

    base_url = str(cfg["posthog_base_url"]).strip().rstrip("/")
    if not base_url:
        raise ConfigError("Config field 'posthog_base_url' must be set.")

    return Settings(
        posthog_base_url=base_url,
        posthog_project_id=_optional_str(cfg["posthog_project_id"]),
        posthog_api_key=_optional_str(cfg["posthog_api_key"]),
        swap_event_name=str(cfg["swap_event_name"]).strip(),
        network_filter=str(cfg["network_filter"]).strip(),
        volume_side=side,
        volume_prop_in=str(cfg["volume_prop_in"]).strip(),
        volume_prop_out=str(cfg["volume_prop_out"]).strip(),
        exclude_account_id_patterns=parse_csv(cfg["exclude_account_id_patterns"]),
        exclude_account_ids=parse_csv(cfg["exclude_account_ids"]),
        prices_api_url=_optional_str(cfg["prices_api_url"]),
        coingecko_url=str(cfg["coingecko_url"]).strip(),
        batch_size=_as_int(cfg, "batch_size", 1),
        max_events=_as_int(cfg, "max_events", 0),
        top_n=_as_int(cfg, "top_n", 1),
        fee_leaders_top_n=_as_int(cfg, "fee_leaders_top_n", 1),
        request_timeout_sec=_as_float(cfg, "request_timeout_sec"),
        prices_timeout_sec=_as_float(cfg, "prices_timeout_sec"),
        fallback_timeout_sec=_as_float(cfg, "fallback_timeout_sec"),
        max_retries=_as_int(cfg, "max_retries", 1),
        backoff_base_sec=_as_float(cfg, "backoff_base_sec"),
        throttle_every_pages=_as_int(cfg, "throttle_every_pages", 0),
        throttle_delay_sec=_as_float(cfg, "throttle_delay_sec"),
        price_cache_ttl_sec=_as_float(cfg, "price_cache_ttl_sec"),
        user_lists_url=str(cfg["user_lists_url"]).strip(),
        user_lists_timeout_sec=_as_float(cfg, "user_lists_timeout_sec"),
        report_cache_path=str(cfg["report_cache_path"]).strip(),
        report_cache_ttl_sec=_as_float(cfg, "report_cache_ttl_sec"),
    )


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    path = path or CONFIG_PATH
    env = os.environ if env is None else env

    cfg = DEFAULT_CONFIG.copy()
    if not os.path.exists(path):
        logger.info("Configuration file %r not found. Using defaults.", path)
    else:
        with open(path, "r") as fh:
            loaded = yaml.safe_load(fh) or {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Configuration file {path!r} must contain a YAML mapping.")
        cfg.update(loaded)

    for var, key in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is not None and str(value).strip():
            cfg[key] = value

    return normalize_config(cfg)
