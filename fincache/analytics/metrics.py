"""
Derived Metrics Adapter

Feeds aggregation output into the metric calculators and assembles the
metrics object the dashboard renders. The adapter owns only calendar
arithmetic and the income comparison; every formula lives in the
calculators.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Optional

from fincache.analytics.aggregation import (
    previous_month,
    total_assets,
    trailing_average_expense,
)
from fincache.analytics.calculators import DefaultMetricCalculators, MetricCalculators
from fincache.models.aggregates import (
    CurrentMonthData,
    DashboardMetrics,
    IncomeComparison,
    TransactionAggregates,
)
from fincache.models.records import Asset, TransactionKind


DEFAULT_SAVINGS_GOAL_PERCENT = 20.0


def days_remaining_in_month(today: date) -> int:
    """Days after ``today`` until the end of its month."""
    last_day = calendar.monthrange(today.year, today.month)[1]
    return last_day - today.day


def income_comparison(aggregates: TransactionAggregates) -> IncomeComparison:
    """Month-over-month income change in percent, 0 without previous income."""
    current = aggregates.month(aggregates.current_month).income
    previous = aggregates.month(previous_month(aggregates.current_month)).income
    change = float((current - previous) / previous * 100) if previous > 0 else 0.0
    return IncomeComparison(current=current, previous=previous, change=change)


def current_month_data(aggregates: TransactionAggregates) -> CurrentMonthData:
    totals = aggregates.month(aggregates.current_month)
    return CurrentMonthData(
        credits=totals.income,
        debits=totals.expense,
        expenses=totals.expense,
        planned_expenses=totals.expense,
        investments=totals.investment,
        balance=totals.income - totals.expense - totals.investment,
    )


class DerivedMetricsAdapter:
    """
    Usage:
        adapter = DerivedMetricsAdapter(savings_goal_percent=20)
        metrics = adapter.build(aggregates, assets, today=date(2024, 3, 15))
    """

    def __init__(
        self,
        calculators: Optional[MetricCalculators] = None,
        savings_goal_percent: float = DEFAULT_SAVINGS_GOAL_PERCENT,
    ):
        self.calculators = calculators or DefaultMetricCalculators()
        self.savings_goal_percent = savings_goal_percent

    def build(
        self,
        aggregates: TransactionAggregates,
        assets: list[Asset],
        today: Optional[date] = None,
    ) -> DashboardMetrics:
        today = today or date.today()
        current = current_month_data(aggregates)
        avg_expense: Decimal = trailing_average_expense(
            aggregates.totals_by_month, aggregates.current_month
        )
        days_remaining = days_remaining_in_month(today)

        return DashboardMetrics(
            current_month_data=current,
            current_month_income_count=sum(
                1 for t in aggregates.current_month_transactions
                if t.kind is TransactionKind.INCOME
            ),
            total_assets=total_assets(assets),
            avg_monthly_expenses=avg_expense,
            health_score=self.calculators.health_score(current, assets, avg_expense),
            savings_rate=self.calculators.savings_rate(current, self.savings_goal_percent),
            daily_budget=self.calculators.daily_budget(
                current, days_remaining, self.savings_goal_percent
            ),
            days_remaining=days_remaining,
            income_comparison=income_comparison(aggregates),
        )
