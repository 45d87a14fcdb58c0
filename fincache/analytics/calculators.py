"""
Metric Calculators

Pure functions behind the dashboard's health score, savings rate and
daily budget. The adapter depends only on the MetricCalculators
interface, so a deployment can swap the formulas without touching
aggregation or the dashboard resource.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Iterable

from fincache.analytics.aggregation import total_assets
from fincache.models.aggregates import (
    CurrentMonthData,
    DailyBudget,
    HealthScore,
    SavingsRate,
)
from fincache.models.records import Asset


ZERO = Decimal("0")
POINTS_PER_CRITERION = 25

# Health score thresholds
MIN_SAVINGS_RATE = 10.0
MAX_EXPENSE_RATIO = 70.0
MIN_RUNWAY_MONTHS = 3

# (minimum score, band), checked in order
HEALTH_BANDS = (
    (80, "excellent"),
    (60, "good"),
    (40, "attention"),
    (0, "critical"),
)


def health_band(score: int) -> str:
    for minimum, band in HEALTH_BANDS:
        if score >= minimum:
            return band
    return HEALTH_BANDS[-1][1]


def _percent(part: Decimal, whole: Decimal) -> float:
    return float(part / whole * 100)


class MetricCalculators(ABC):
    """Abstract interface for the dashboard's metric formulas."""

    @abstractmethod
    def health_score(
        self,
        current: CurrentMonthData,
        assets: list[Asset],
        avg_monthly_expense: Decimal,
    ) -> HealthScore:
        """Score from 0 to 100 with its qualitative band."""
        pass

    @abstractmethod
    def savings_rate(
        self,
        current: CurrentMonthData,
        goal_percent: float,
    ) -> SavingsRate:
        """Share of income saved this month and the distance to the goal."""
        pass

    @abstractmethod
    def daily_budget(
        self,
        current: CurrentMonthData,
        days_remaining: int,
        goal_percent: float,
    ) -> DailyBudget:
        """What can be spent per remaining day while still meeting the goal."""
        pass


class DefaultMetricCalculators(MetricCalculators):
    """
    The application's standard formulas.

    Health score: 25 points for each of
    1. Positive balance
    2. Savings rate of at least 10% of income
    3. Expenses below 70% of income
    4. Assets covering at least 3 months of average expense
    """

    def health_score(
        self,
        current: CurrentMonthData,
        assets: Iterable[Asset],
        avg_monthly_expense: Decimal,
    ) -> HealthScore:
        savings = current.balance + current.investments
        savings_rate = _percent(savings, current.credits) if current.credits > 0 else 0.0
        expense_ratio = (
            _percent(current.expenses, current.credits) if current.credits > 0 else 100.0
        )
        assets_total = total_assets(assets)
        runway_months = (
            float(assets_total / avg_monthly_expense) if avg_monthly_expense > 0 else 0.0
        )

        breakdown = {
            "balance_positive": current.balance > 0,
            "savings_rate": savings_rate >= MIN_SAVINGS_RATE,
            "expense_ratio": expense_ratio < MAX_EXPENSE_RATIO,
            "asset_runway": runway_months >= MIN_RUNWAY_MONTHS,
        }
        score = POINTS_PER_CRITERION * sum(breakdown.values())

        return HealthScore(
            score=score,
            band=health_band(score),
            breakdown={
                **breakdown,
                "savings_rate_percent": savings_rate,
                "expense_ratio_percent": expense_ratio,
                "runway_months": runway_months,
            },
        )

    def savings_rate(
        self,
        current: CurrentMonthData,
        goal_percent: float,
    ) -> SavingsRate:
        savings = current.balance + current.investments
        rate = _percent(savings, current.credits) if current.credits > 0 else 0.0
        goal_amount = current.credits * Decimal(str(goal_percent)) / 100
        return SavingsRate(
            savings=savings,
            credits=current.credits,
            savings_rate=rate,
            goal=goal_percent,
            amount_to_goal=max(ZERO, goal_amount - savings),
        )

    def daily_budget(
        self,
        current: CurrentMonthData,
        days_remaining: int,
        goal_percent: float,
    ) -> DailyBudget:
        goal_amount = current.credits * Decimal(str(goal_percent)) / 100
        available = current.balance - goal_amount
        return DailyBudget(
            daily_budget=available / days_remaining if days_remaining > 0 else ZERO,
            days_remaining=max(0, days_remaining),
            available_balance=available,
            savings_goal_amount=goal_amount,
        )
