"""
Record Models for fincache

These models describe the records the hosted backend returns for each
data domain (transactions, assets, banks, cards, categories, budgets,
user settings and reference data).

DESIGN DECISION: Records allow extra fields.
The backend views carry many display columns we never interpret; they
are kept verbatim so a cached record round-trips unchanged.

Money is Decimal. Dates stay as ISO strings ("YYYY-MM-DD"): month
bucketing only ever needs the "YYYY-MM" prefix.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class TransactionKind(str, Enum):
    """
    Transaction kinds the aggregation engine recognizes.

    Any other ``type_internal_name`` (transfers, adjustments...) is
    stored but never bucketed.
    """
    INCOME = "income"
    EXPENSE = "expense"
    INVESTMENT = "investment"


class SubscriptionStatus(str, Enum):
    """Account subscription status."""
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


def _iso_date(v: Any) -> Any:
    if isinstance(v, datetime):
        return v.date().isoformat()
    if isinstance(v, date):
        return v.isoformat()
    return v


IsoDate = Annotated[Optional[str], BeforeValidator(_iso_date)]


class Record(BaseModel):
    """Base for every backend record."""
    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    id: Optional[Any] = None


# =============================================================================
# TRANSACTIONAL RECORDS
# =============================================================================

class Transaction(Record):
    """
    A dated money movement.

    ``amount`` is signed as the backend stores it; aggregation always
    uses its absolute value.
    """
    description: Optional[str] = None
    amount: Decimal = Field(
        default=Decimal("0"),
        description="Signed amount"
    )
    date: IsoDate = Field(
        default=None,
        description="Transaction date (YYYY-MM-DD)"
    )
    type_internal_name: Optional[str] = Field(
        default=None,
        description="income, expense, investment or another backend type"
    )
    category_id: Optional[Any] = None
    category_name: Optional[str] = None
    category_color: Optional[str] = None
    category_icon: Optional[str] = None
    bank_id: Optional[Any] = None
    card_id: Optional[Any] = None
    notes: Optional[str] = None

    @property
    def kind(self) -> Optional[TransactionKind]:
        """The recognized kind, or None for types that are not bucketed."""
        try:
            return TransactionKind(self.type_internal_name)
        except ValueError:
            return None

    @property
    def month(self) -> Optional[str]:
        """The "YYYY-MM" bucket key, or None when the date is missing."""
        if not self.date:
            return None
        return self.date[:7]


class Asset(Record):
    """An asset valuation."""
    name: Optional[str] = None
    value: Decimal = Field(
        default=Decimal("0"),
        description="Current valuation"
    )
    date: IsoDate = Field(
        default=None,
        description="Valuation date (YYYY-MM-DD)"
    )
    category_id: Optional[Any] = None
    is_deleted: bool = False
    deleted_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return not self.is_deleted and not self.deleted_at


class Budget(Record):
    """A monthly spending limit for one category."""
    category_id: Optional[Any] = None
    category_name: Optional[str] = None
    year: Optional[int] = None
    month: Optional[int] = None
    limit_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Spending limit for the month"
    )
    spent_amount: Decimal = Field(
        default=Decimal("0"),
        description="Spending so far, computed by the backend"
    )
    alert_percentage: Optional[int] = None


# =============================================================================
# CATALOG RECORDS
# =============================================================================

class Category(Record):
    """Category metadata used for display and breakdowns."""
    name: Optional[str] = None
    color: Optional[str] = None
    icon_name: Optional[str] = None
    emoji: Optional[str] = None
    transaction_type_id: Optional[Any] = None


class Bank(Record):
    """A bank account."""
    name: Optional[str] = None
    color: Optional[str] = None
    account_type_id: Optional[Any] = None
    initial_balance: Optional[Decimal] = None


class Card(Record):
    """A payment card."""
    name: Optional[str] = None
    color: Optional[str] = None
    bank_id: Optional[Any] = None
    card_type_id: Optional[Any] = None
    card_brand_id: Optional[Any] = None
    limit_amount: Optional[Decimal] = None


class ReferenceItem(Record):
    """A generic lookup row (transaction type, payment status, icon...)."""
    name: Optional[str] = None
    internal_name: Optional[str] = None


class ReferenceData(BaseModel):
    """
    Every lookup table the forms need, fetched together.

    Tables that were not requested (or failed to load) are empty lists.
    """
    categories: list[Category] = Field(default_factory=list)
    transaction_types: list[ReferenceItem] = Field(default_factory=list)
    payment_statuses: list[ReferenceItem] = Field(default_factory=list)
    payment_methods: list[ReferenceItem] = Field(default_factory=list)
    recurrence_frequencies: list[ReferenceItem] = Field(default_factory=list)
    icons: list[ReferenceItem] = Field(default_factory=list)
    account_types: list[ReferenceItem] = Field(default_factory=list)
    card_types: list[ReferenceItem] = Field(default_factory=list)
    card_brands: list[ReferenceItem] = Field(default_factory=list)


# =============================================================================
# USER SETTINGS
# =============================================================================

class AccountMember(Record):
    """A household member sharing the account."""
    name: Optional[str] = None
    email: Optional[str] = None
    work_type: Optional[str] = None


class UserSettings(BaseModel):
    """
    Profile, preferences and members of the signed-in account.

    Preference keys vary by account, so they are accepted as extra fields.
    """
    model_config = ConfigDict(extra="allow")

    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    currency: Optional[str] = None
    subscription_status: Optional[str] = None
    trial_ends_at: Optional[datetime] = None
    members: list[AccountMember] = Field(default_factory=list)


# =============================================================================
# DASHBOARD
# =============================================================================

class DashboardSnapshot(BaseModel):
    """The three record lists the dashboard is computed from."""
    categories: list[Category] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    assets: list[Asset] = Field(default_factory=list)
