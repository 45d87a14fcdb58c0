"""
Aggregate Models

Outputs of the aggregation engine and the derived metrics adapter.
Everything here is recomputed from the full record lists on every pass;
nothing is updated incrementally.
"""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from fincache.models.records import Transaction


ZERO = Decimal("0")


class MonthTotals(BaseModel):
    """One month bucket: absolute totals per transaction kind."""
    income: Decimal = ZERO
    expense: Decimal = ZERO
    investment: Decimal = ZERO


class CategoryBreakdownEntry(BaseModel):
    """Current-month total for one category display name."""
    name: str
    value: Decimal = ZERO
    color: str
    icon: str


class TransactionAggregates(BaseModel):
    """
    Result of one aggregation pass.

    ``category_breakdowns`` is keyed by transaction kind value
    ("income", "expense", "investment"), entries in first-seen order.
    """
    totals_by_month: dict[str, MonthTotals] = Field(default_factory=dict)
    category_breakdowns: dict[str, list[CategoryBreakdownEntry]] = Field(default_factory=dict)
    current_month_transactions: list[Transaction] = Field(default_factory=list)
    current_month: str

    def month(self, key: str) -> MonthTotals:
        """Totals for a month, zero-filled when absent."""
        return self.totals_by_month.get(key) or MonthTotals()


class ChartSeriesPoint(BaseModel):
    """One month in a chart window."""
    date: str = Field(..., description="Localized short month label")
    month: str = Field(..., description="YYYY-MM key of the point")
    income: Decimal = ZERO
    expense: Decimal = ZERO
    investment: Decimal = ZERO


class ChartSeries(BaseModel):
    """Fixed-length series per window kind (6, 3, 6 and 12 points)."""
    monthly: list[ChartSeriesPoint]
    quarterly: list[ChartSeriesPoint]
    semester: list[ChartSeriesPoint]
    yearly: list[ChartSeriesPoint]


class CategoryData(BaseModel):
    """Current-month category breakdowns as the dashboard consumes them."""
    income: list[CategoryBreakdownEntry] = Field(default_factory=list)
    expenses: list[CategoryBreakdownEntry] = Field(default_factory=list)
    investments: list[CategoryBreakdownEntry] = Field(default_factory=list)


# =============================================================================
# DERIVED METRICS
# =============================================================================

class CurrentMonthData(BaseModel):
    """Current month totals in the shape the calculators expect."""
    credits: Decimal = ZERO
    debits: Decimal = ZERO
    expenses: Decimal = ZERO
    planned_expenses: Decimal = ZERO
    investments: Decimal = ZERO
    balance: Decimal = ZERO


class HealthScore(BaseModel):
    """Financial health score (0-100) with its qualitative band."""
    score: int = Field(..., ge=0, le=100)
    band: str
    breakdown: dict[str, Any] = Field(default_factory=dict)


class SavingsRate(BaseModel):
    savings: Decimal = ZERO
    credits: Decimal = ZERO
    savings_rate: float = 0.0
    goal: float
    amount_to_goal: Decimal = ZERO


class DailyBudget(BaseModel):
    daily_budget: Decimal = ZERO
    days_remaining: int = Field(..., ge=0)
    available_balance: Decimal = ZERO
    savings_goal_amount: Decimal = ZERO


class IncomeComparison(BaseModel):
    """Month-over-month income change in percent (0 without a previous month)."""
    current: Decimal = ZERO
    previous: Decimal = ZERO
    change: float = 0.0


class DashboardMetrics(BaseModel):
    current_month_data: CurrentMonthData
    current_month_income_count: int = 0
    total_assets: Decimal = ZERO
    avg_monthly_expenses: Decimal = ZERO
    health_score: HealthScore
    savings_rate: SavingsRate
    daily_budget: DailyBudget
    days_remaining: int
    income_comparison: IncomeComparison


class DashboardView(BaseModel):
    """Everything the dashboard renders, derived from one snapshot."""
    current_month: str
    metrics: DashboardMetrics
    category_data: CategoryData
    chart_data: ChartSeries
    is_from_cache: bool = False
    error: Optional[str] = None


# =============================================================================
# BUDGETS AND SUBSCRIPTION
# =============================================================================

class BudgetTotals(BaseModel):
    """Totals over the budgets of one month."""
    total_limit: Decimal = ZERO
    total_spent: Decimal = ZERO
    remaining: Decimal = ZERO
    percentage: float = 0.0


class SubscriptionInfo(BaseModel):
    """Display information for the account's subscription status."""
    status: str
    label: str
    color: str
    expired: bool
    days_remaining: Optional[int] = None
