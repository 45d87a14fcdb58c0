"""
Aggregation Engine

Pure, synchronous transformation of raw records into month buckets,
chart windows and current-month category breakdowns.

DESIGN DECISION: Always recompute from the full list.
Buckets are never updated incrementally, so running an aggregation
twice over the same input yields identical output.

Windows are calendar arithmetic over the bucket map and never re-scan
transactions. Every window has a fixed length with zero-filled months:
monthly 6, quarterly 3, semester 6, yearly 12.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Union

from fincache.models.aggregates import (
    CategoryBreakdownEntry,
    ChartSeries,
    ChartSeriesPoint,
    MonthTotals,
    TransactionAggregates,
)
from fincache.models.records import Asset, Category, Transaction, TransactionKind


ZERO = Decimal("0")

FALLBACK_CATEGORY_NAME = "Outros"

# Display defaults when neither the category nor the transaction has them
KIND_DEFAULTS: dict[TransactionKind, tuple[str, str]] = {
    TransactionKind.INCOME: ("#10b981", "Tag"),
    TransactionKind.EXPENSE: ("#6366f1", "Tag"),
    TransactionKind.INVESTMENT: ("#06b6d4", "TrendingUp"),
}

MONTH_LABELS: dict[str, tuple[str, ...]] = {
    "pt-BR": ("Jan", "Fev", "Mar", "Abr", "Mai", "Jun",
              "Jul", "Ago", "Set", "Out", "Nov", "Dez"),
    "en-US": ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
}

TRAILING_EXPENSE_MONTHS = 3


# =============================================================================
# MONTH KEYS
# =============================================================================

def month_key(value: Union[str, date, datetime]) -> str:
    """``"YYYY-MM"`` for an ISO date string, date or datetime."""
    if isinstance(value, (date, datetime)):
        return f"{value.year:04d}-{value.month:02d}"
    return str(value)[:7]


def parse_month_key(key: str) -> tuple[int, int]:
    year, month = key.split("-")[:2]
    return int(year), int(month)


def format_month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def shift_month(key: str, delta: int) -> str:
    """Move a month key by ``delta`` months (negative goes back)."""
    year, month = parse_month_key(key)
    index = year * 12 + (month - 1) + delta
    return format_month_key(index // 12, index % 12 + 1)


def previous_month(key: str) -> str:
    return shift_month(key, -1)


def current_month_key(today: Optional[date] = None) -> str:
    return month_key(today or date.today())


def month_label(key: str, locale: str = "pt-BR") -> str:
    """Short, capitalized month name of a month key."""
    _, month = parse_month_key(key)
    return MONTH_LABELS[locale][month - 1]


# =============================================================================
# AGGREGATION
# =============================================================================

def aggregate_transactions(
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    current_month: str,
) -> TransactionAggregates:
    """
    Fold transactions into month buckets and current-month breakdowns.

    - Transactions without a date are skipped.
    - Every dated transaction gets a (zero-filled) bucket for its month;
      only income, expense and investment add to it.
    - Amounts are absolute values.
    - Breakdowns cover the current month only, keyed by category
      display name, in first-seen order.
    """
    category_lookup = {c.id: c for c in categories if c.id is not None}

    totals: dict[str, MonthTotals] = {}
    current_transactions: list[Transaction] = []
    breakdowns: dict[TransactionKind, dict[str, CategoryBreakdownEntry]] = {
        kind: {} for kind in TransactionKind
    }

    for transaction in transactions:
        key = transaction.month
        if not key:
            continue

        amount = abs(transaction.amount)
        bucket = totals.get(key)
        if bucket is None:
            bucket = totals[key] = MonthTotals()

        kind = transaction.kind
        if kind is not None:
            setattr(bucket, kind.value, getattr(bucket, kind.value) + amount)

        if key != current_month or kind is None:
            continue
        current_transactions.append(transaction)

        category = category_lookup.get(transaction.category_id)
        name = (
            transaction.category_name
            or (category.name if category else None)
            or FALLBACK_CATEGORY_NAME
        )
        entries = breakdowns[kind]
        entry = entries.get(name)
        if entry is None:
            default_color, default_icon = KIND_DEFAULTS[kind]
            entry = entries[name] = CategoryBreakdownEntry(
                name=name,
                color=(
                    (category.color if category else None)
                    or transaction.category_color
                    or default_color
                ),
                icon=(
                    (category.icon_name if category else None)
                    or ((category.model_extra or {}).get("icon") if category else None)
                    or transaction.category_icon
                    or default_icon
                ),
            )
        entry.value += amount

    return TransactionAggregates(
        totals_by_month=totals,
        category_breakdowns={
            kind.value: list(entries.values())
            for kind, entries in breakdowns.items()
        },
        current_month_transactions=current_transactions,
        current_month=current_month,
    )


# =============================================================================
# WINDOWS
# =============================================================================

def monthly_window(current_month: str) -> list[str]:
    """The 6 months ending at the current month."""
    return [shift_month(current_month, -offset) for offset in range(5, -1, -1)]


def quarterly_window(current_month: str) -> list[str]:
    """The 3 months of the current calendar quarter."""
    year, month = parse_month_key(current_month)
    start = (month - 1) // 3 * 3 + 1
    return [format_month_key(year, m) for m in range(start, start + 3)]


def semester_window(current_month: str) -> list[str]:
    """The 6 months of the current half-year."""
    year, month = parse_month_key(current_month)
    start = 1 if month <= 6 else 7
    return [format_month_key(year, m) for m in range(start, start + 6)]


def yearly_window(current_month: str) -> list[str]:
    """January to December of the current year."""
    year, _ = parse_month_key(current_month)
    return [format_month_key(year, m) for m in range(1, 13)]


def window_points(
    totals: dict[str, MonthTotals],
    keys: Iterable[str],
    locale: str = "pt-BR",
) -> list[ChartSeriesPoint]:
    points = []
    for key in keys:
        bucket = totals.get(key) or MonthTotals()
        points.append(ChartSeriesPoint(
            date=month_label(key, locale),
            month=key,
            income=bucket.income,
            expense=bucket.expense,
            investment=bucket.investment,
        ))
    return points


def build_chart_series(
    totals: dict[str, MonthTotals],
    current_month: str,
    locale: str = "pt-BR",
) -> ChartSeries:
    return ChartSeries(
        monthly=window_points(totals, monthly_window(current_month), locale),
        quarterly=window_points(totals, quarterly_window(current_month), locale),
        semester=window_points(totals, semester_window(current_month), locale),
        yearly=window_points(totals, yearly_window(current_month), locale),
    )


# =============================================================================
# ASSETS AND AVERAGES
# =============================================================================

def total_assets(assets: Iterable[Asset]) -> Decimal:
    """Flat sum of the values of non-deleted assets."""
    return sum((a.value for a in assets if a.is_active), ZERO)


def trailing_average_expense(
    totals: dict[str, MonthTotals],
    current_month: str,
) -> Decimal:
    """
    Mean expense of the current and two previous months, counting only
    months with spending. Falls back to the current month's expense.
    """
    expenses = [
        (totals.get(shift_month(current_month, -offset)) or MonthTotals()).expense
        for offset in range(TRAILING_EXPENSE_MONTHS)
    ]
    spent = [e for e in expenses if e > 0]
    if not spent:
        return expenses[0]
    return sum(spent, ZERO) / len(spent)
