"""Analytics Layer - Buyer PnL and cohort statistics."""

from .pnl import calculate_pnl, aggregate_buyer, summarize_cohort, CohortStats

__all__ = [
    "calculate_pnl",
    "aggregate_buyer",
    "summarize_cohort",
    "CohortStats",
]
