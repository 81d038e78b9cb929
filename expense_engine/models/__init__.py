"""
Data Models Package

This package contains all Pydantic models used in the Expense Engine.
Everything written to the key/value backend conforms to these schemas.
"""

from expense_engine.models.expense import (
    Budget,
    BudgetLevel,
    BudgetStatus,
    DateRange,
    Expense,
    ExpenseCategory,
    Pagination,
    QueryFilters,
    QueryPage,
    SyncJob,
    SyncStatus,
)
from expense_engine.models.events import (
    EventSeverity,
    EventType,
    Notification,
)
from expense_engine.models.inference import (
    ExtractionResult,
    InsightsResult,
    RequestType,
)

__all__ = [
    # Expense models
    "Budget",
    "BudgetLevel",
    "BudgetStatus",
    "DateRange",
    "Expense",
    "ExpenseCategory",
    "Pagination",
    "QueryFilters",
    "QueryPage",
    "SyncJob",
    "SyncStatus",
    # Notification models
    "EventSeverity",
    "EventType",
    "Notification",
    # Inference models
    "ExtractionResult",
    "InsightsResult",
    "RequestType",
]
