"""
Swap Metrics

Streaming aggregation of swap events into volume, pair, account and fee reports.
"""

__version__ = "1.0.0"

from swap_metrics.core.aggregation import (
    FeeLeadersEngine,
    SwapMetricsEngine,
    get_fee_leaders,
    get_swap_metrics,
)
from swap_metrics.core.config import Settings, load_config
from swap_metrics.core.errors import (
    ConfigError,
    EventSourceError,
    PriceSourceError,
    RetriesExhausted,
    SwapMetricsError,
)

__all__ = [
    "__version__",
    "ConfigError",
    "EventSourceError",
    "FeeLeadersEngine",
    "PriceSourceError",
    "RetriesExhausted",
    "Settings",
    "SwapMetricsEngine",
    "SwapMetricsError",
    "get_fee_leaders",
    "get_swap_metrics",
    "load_config",
]
