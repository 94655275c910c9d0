"""
Single-pass aggregation of swap events into reports.
"""

from swap_metrics.core.aggregation.engine import SwapMetricsEngine, get_swap_metrics
from swap_metrics.core.aggregation.fee_leaders import FeeLeadersEngine, get_fee_leaders

__all__ = [
    "FeeLeadersEngine",
    "SwapMetricsEngine",
    "get_fee_leaders",
    "get_swap_metrics",
]
