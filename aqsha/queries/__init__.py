"""Transaction query and statistics package."""

from aqsha.queries.executor import TransactionQueryEngine, resolve_user
from aqsha.queries.statistics import StatisticsAggregator, summarize_transactions

__all__ = [
    "StatisticsAggregator",
    "TransactionQueryEngine",
    "resolve_user",
    "summarize_transactions",
]
