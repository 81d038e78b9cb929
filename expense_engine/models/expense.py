"""
Core Data Models for Expense Engine

These models define the schemas for everything the store and the
sync queue keep at rest:
1. Expense records (the primary table)
2. Query filters, pagination and result pages
3. Sync jobs and sync queue status
4. Budgets

DESIGN DECISION: Amounts are Decimal quantized to 2 places and serialize
as fixed 2-decimal strings ("12.00"), so nothing drifts through float
rounding on the way to and from the key/value backend.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


TWO_PLACES = Decimal("0.01")


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    Anything outside this set is coerced to OTHER at save time.
    """
    FOOD = "Food"
    GROCERIES = "Groceries"
    TRANSPORTATION = "Transportation"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    HEALTH = "Health"
    BILLS = "Bills"
    OTHER = "Other"

    @classmethod
    def match(cls, value: Optional[str]) -> Optional["ExpenseCategory"]:
        """Case-insensitive lookup, including legacy labels. None if unknown."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for category in cls:
            if category.value.lower() == key:
                return category
        return _CATEGORY_ALIASES.get(key)


# Labels used by earlier versions of the capture screens
_CATEGORY_ALIASES = {
    "food & dining": ExpenseCategory.FOOD,
    "dining": ExpenseCategory.FOOD,
    "bills & utilities": ExpenseCategory.BILLS,
    "utilities": ExpenseCategory.BILLS,
    "transport": ExpenseCategory.TRANSPORTATION,
}


class BudgetLevel(str, Enum):
    """How much of a budget has been used."""
    GOOD = "good"        # under 70%
    WARNING = "warning"  # under 90%
    OVER = "over"


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class Expense(BaseModel):
    """
    A single expense record.

    `id` is assigned by the store on first save and never changes.
    `timestamp` is the creation instant; it is set once and preserved
    across updates.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Unique expense ID (assigned on first save)"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount spent, 2 decimal places"
    )
    merchant: str = Field(
        default="Unknown",
        description="Where the money was spent"
    )
    category: ExpenseCategory = Field(
        default=ExpenseCategory.OTHER,
        description="Expense category"
    )
    date: dt.date = Field(
        default_factory=dt.date.today,
        description="Calendar date of the expense"
    )
    description: str = Field(
        default="",
        description="Free text description"
    )
    items: list[str] = Field(
        default_factory=list,
        description="Line items, in receipt order"
    )
    timestamp: dt.datetime = Field(
        default_factory=utc_now,
        description="When the expense was first recorded"
    )

    @field_validator('amount')
    @classmethod
    def quantize_amount(cls, v: Decimal) -> Decimal:
        return v.quantize(TWO_PLACES)

    @field_validator('merchant')
    @classmethod
    def default_merchant(cls, v: str) -> str:
        return v or "Unknown"

    @field_validator('timestamp')
    @classmethod
    def assume_utc(cls, v: dt.datetime) -> dt.datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=dt.timezone.utc)
        return v

    @field_serializer('amount')
    def serialize_amount(self, v: Decimal) -> str:
        return f"{v:.2f}"

    @property
    def date_key(self) -> str:
        """Key of the date index bucket this expense belongs to."""
        return self.date.isoformat()

    def searchable_text(self) -> str:
        return f"{self.merchant} {self.description} {self.category.value}".lower()


# =============================================================================
# QUERY MODELS
# =============================================================================

class DateRange(BaseModel):
    """Inclusive, day-granularity date range."""

    start: dt.date
    end: dt.date

    def days(self) -> list[str]:
        """Every day key from start to end, inclusive. Empty if start > end."""
        keys = []
        current = self.start
        while current <= self.end:
            keys.append(current.isoformat())
            current += dt.timedelta(days=1)
        return keys


class QueryFilters(BaseModel):
    """
    Filters for a store query.

    Only one filter is applied, in priority order:
    date_range > category > merchant > none (all expenses).
    """

    date_range: Optional[DateRange] = None
    category: Optional[str] = None
    merchant: Optional[str] = None


class Pagination(BaseModel):
    """Offset/limit window over a sorted result."""

    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1)


class QueryPage(BaseModel):
    """One page of query results."""

    expenses: list[Expense] = Field(default_factory=list)
    total: int = Field(
        ge=0,
        description="Number of candidates before windowing"
    )
    has_more: bool = Field(
        description="True when offset + limit < total"
    )

    @property
    def ids(self) -> list[Optional[str]]:
        return [expense.id for expense in self.expenses]


# =============================================================================
# SYNC MODELS
# =============================================================================

class SyncJob(BaseModel):
    """
    A queued journal delivery.

    Holds a snapshot of the expense as it was when enqueued. Moved verbatim
    to the dead-letter list once its retry budget is used up.
    """

    expense: Expense
    retries: int = Field(default=0, ge=0)
    added_at: dt.datetime = Field(default_factory=utc_now)
    failed_at: Optional[dt.datetime] = None


class SyncStatus(BaseModel):
    """Snapshot of the sync queue state."""

    enabled: bool
    syncing: bool
    queue_length: int = Field(ge=0)

    @property
    def pending(self) -> bool:
        return self.queue_length > 0


# =============================================================================
# BUDGET MODELS
# =============================================================================

class Budget(BaseModel):
    """Spending limits per period."""

    daily: Decimal = Field(default=Decimal("200"), ge=0)
    weekly: Decimal = Field(default=Decimal("1400"), ge=0)
    monthly: Decimal = Field(default=Decimal("6000"), ge=0)


class BudgetStatus(BaseModel):
    """How a period's spending compares to its limit."""

    spent: Decimal
    limit: Decimal
    percentage: float
    remaining: Decimal
    status: BudgetLevel

    @classmethod
    def from_totals(cls, spent: Decimal, limit: Decimal) -> 'BudgetStatus':
        percentage = float(spent / limit * 100) if limit > 0 else 100.0
        if percentage < 70:
            level = BudgetLevel.GOOD
        elif percentage < 90:
            level = BudgetLevel.WARNING
        else:
            level = BudgetLevel.OVER
        return cls(
            spent=spent,
            limit=limit,
            percentage=percentage,
            remaining=limit - spent,
            status=level,
        )
