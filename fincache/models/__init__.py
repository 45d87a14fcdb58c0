"""
Data Models Package

This package contains all Pydantic models used by fincache.
Everything read from the backend or the cache is validated against these schemas.
"""

from fincache.models.records import (
    AccountMember,
    Asset,
    Bank,
    Budget,
    Card,
    Category,
    DashboardSnapshot,
    Record,
    ReferenceData,
    ReferenceItem,
    SubscriptionStatus,
    Transaction,
    TransactionKind,
    UserSettings,
)
from fincache.models.aggregates import (
    BudgetTotals,
    CategoryBreakdownEntry,
    CategoryData,
    ChartSeries,
    ChartSeriesPoint,
    CurrentMonthData,
    DailyBudget,
    DashboardMetrics,
    DashboardView,
    HealthScore,
    IncomeComparison,
    MonthTotals,
    SavingsRate,
    SubscriptionInfo,
    TransactionAggregates,
)
from fincache.models.audit import (
    ResourceEvent,
    ResourceEventBuilder,
    ResourceEventSeverity,
    ResourceEventType,
)

__all__ = [
    # Record models
    "AccountMember",
    "Asset",
    "Bank",
    "Budget",
    "Card",
    "Category",
    "DashboardSnapshot",
    "Record",
    "ReferenceData",
    "ReferenceItem",
    "SubscriptionStatus",
    "Transaction",
    "TransactionKind",
    "UserSettings",
    # Aggregate models
    "BudgetTotals",
    "CategoryBreakdownEntry",
    "CategoryData",
    "ChartSeries",
    "ChartSeriesPoint",
    "CurrentMonthData",
    "DailyBudget",
    "DashboardMetrics",
    "DashboardView",
    "HealthScore",
    "IncomeComparison",
    "MonthTotals",
    "SavingsRate",
    "SubscriptionInfo",
    "TransactionAggregates",
    # Event models
    "ResourceEvent",
    "ResourceEventBuilder",
    "ResourceEventSeverity",
    "ResourceEventType",
]
