"""
Core functionality for swap event harvesting and aggregation.
"""

from swap_metrics.core.models import SwapEvent
from swap_metrics.core.tokens import is_equivalent_pair, resolve_price_id

__all__ = [
    "SwapEvent",
    "is_equivalent_pair",
    "resolve_price_id",
]
