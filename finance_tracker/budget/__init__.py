"""Budget package."""

from finance_tracker.budget.aggregator import BudgetAggregator, month_bounds

__all__ = ["BudgetAggregator", "month_bounds"]
