"""Summary aggregation package."""

from expense_tracker.summary.aggregator import SummaryService

__all__ = ["SummaryService"]
