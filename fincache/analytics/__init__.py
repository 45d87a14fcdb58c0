"""
Analytics Package

Aggregation of raw records into month buckets, chart windows and
category breakdowns, and the derived dashboard metrics.
"""

from fincache.analytics.aggregation import (
    MONTH_LABELS,
    aggregate_transactions,
    build_chart_series,
    current_month_key,
    month_key,
    monthly_window,
    previous_month,
    quarterly_window,
    semester_window,
    total_assets,
    trailing_average_expense,
    yearly_window,
)
from fincache.analytics.calculators import (
    DefaultMetricCalculators,
    MetricCalculators,
    health_band,
)
from fincache.analytics.metrics import (
    DerivedMetricsAdapter,
    days_remaining_in_month,
    income_comparison,
)

__all__ = [
    # Aggregation
    "MONTH_LABELS",
    "aggregate_transactions",
    "build_chart_series",
    "current_month_key",
    "month_key",
    "monthly_window",
    "previous_month",
    "quarterly_window",
    "semester_window",
    "total_assets",
    "trailing_average_expense",
    "yearly_window",
    # Calculators
    "DefaultMetricCalculators",
    "MetricCalculators",
    "health_band",
    # Metrics
    "DerivedMetricsAdapter",
    "days_remaining_in_month",
    "income_comparison",
]
