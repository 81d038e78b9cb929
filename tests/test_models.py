"""
Tests for Expense Engine models

Test strategy:
1. Unit tests for individual components (models, validators)
2. Integration tests for flows (with in-memory fakes)
3. No real host bridge in tests
"""

import datetime as dt
from decimal import Decimal

import pytest

from expense_engine.models.events import EventSeverity, EventType, Notification
from expense_engine.models.expense import (
    BudgetLevel,
    BudgetStatus,
    DateRange,
    Expense,
    ExpenseCategory,
    Pagination,
    SyncJob,
    SyncStatus,
)
from expense_engine.models.inference import ExtractionResult, InsightsResult, RequestType


class TestExpenseModel:
    """Tests for the Expense record."""

    def test_expense_defaults(self):
        """Test Expense defaults for optional fields."""
        expense = Expense(amount=Decimal("3"))
        assert expense.id is None
        assert expense.merchant == "Unknown"
        assert expense.category == ExpenseCategory.OTHER
        assert expense.date == dt.date.today()
        assert expense.items == []
        assert expense.timestamp.tzinfo is not None

    def test_amount_is_quantized(self):
        """Test that amounts carry exactly two decimal places."""
        expense = Expense(amount=Decimal("12.5"))
        assert expense.amount == Decimal("12.50")
        assert str(expense.amount) == "12.50"

    def test_amount_serializes_as_fixed_string(self):
        """Test the 2-decimal string form used at rest."""
        expense = Expense(amount=Decimal("7"))
        assert expense.model_dump(mode="json")["amount"] == "7.00"

    def test_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            Expense(amount=Decimal("-1"))

    def test_strips_whitespace(self):
        """Test that whitespace is stripped from merchant names."""
        assert Expense(amount=1, merchant="  Cafe  ").merchant == "Cafe"

    def test_naive_timestamp_assumed_utc(self):
        """Test that naive timestamps are pinned to UTC."""
        expense = Expense(amount=1, timestamp=dt.datetime(2025, 1, 1, 12, 0))
        assert expense.timestamp.tzinfo == dt.timezone.utc

    def test_searchable_text(self):
        """Test the lowercase text search runs against."""
        expense = Expense(amount=1, merchant="Cafe", description="Latte", category="Food")
        assert expense.searchable_text() == "cafe latte food"


class TestCategories:
    """Tests for the fixed category set."""

    def test_all_categories_exist(self):
        """Test that every expected category is defined."""
        expected = [
            "Food", "Groceries", "Transportation", "Shopping",
            "Entertainment", "Health", "Bills", "Other",
        ]
        assert [category.value for category in ExpenseCategory] == expected

    def test_match_is_case_insensitive(self):
        """Test case-insensitive matching."""
        assert ExpenseCategory.match("groceries") == ExpenseCategory.GROCERIES
        assert ExpenseCategory.match(" HEALTH ") == ExpenseCategory.HEALTH

    def test_match_legacy_labels(self):
        """Test that older capture labels still resolve."""
        assert ExpenseCategory.match("Food & Dining") == ExpenseCategory.FOOD
        assert ExpenseCategory.match("Bills & Utilities") == ExpenseCategory.BILLS

    def test_match_unknown(self):
        """Test that unknown labels do not match."""
        assert ExpenseCategory.match("Spaceships") is None
        assert ExpenseCategory.match(None) is None


class TestQueryModels:
    """Tests for date ranges and pagination."""

    def test_date_range_days_inclusive(self):
        """Test that both ends of a range are included."""
        days = DateRange(start=dt.date(2025, 1, 30), end=dt.date(2025, 2, 1)).days()
        assert days == ["2025-01-30", "2025-01-31", "2025-02-01"]

    def test_date_range_reversed_is_empty(self):
        """Test that start after end yields no days."""
        assert DateRange(start=dt.date(2025, 2, 1), end=dt.date(2025, 1, 1)).days() == []

    def test_pagination_bounds(self):
        """Test pagination validation."""
        assert Pagination().limit == 50
        with pytest.raises(ValueError):
            Pagination(offset=-1)
        with pytest.raises(ValueError):
            Pagination(limit=0)


class TestSyncModels:
    """Tests for sync jobs and status."""

    def test_sync_job_round_trip(self):
        """Test that a dead-lettered job survives JSON."""
        job = SyncJob(expense=Expense(id="exp_1", amount=Decimal("2.50")), retries=6)
        job.failed_at = dt.datetime(2025, 1, 1, tzinfo=dt.timezone.utc)

        restored = SyncJob.model_validate(job.model_dump(mode="json"))

        assert restored == job

    def test_sync_status_pending(self):
        """Test the pending flag."""
        assert SyncStatus(enabled=True, syncing=False, queue_length=2).pending
        assert not SyncStatus(enabled=True, syncing=False, queue_length=0).pending


class TestBudgetStatus:
    """Tests for budget thresholds."""

    @pytest.mark.parametrize("spent,level", [
        ("0", BudgetLevel.GOOD),
        ("69.99", BudgetLevel.GOOD),
        ("70", BudgetLevel.WARNING),
        ("89.99", BudgetLevel.WARNING),
        ("90", BudgetLevel.OVER),
        ("150", BudgetLevel.OVER),
    ])
    def test_levels(self, spent, level):
        """Test good/warning/over boundaries on a 100 limit."""
        status = BudgetStatus.from_totals(Decimal(spent), Decimal("100"))
        assert status.status == level
        assert status.remaining == Decimal("100") - Decimal(spent)

    def test_zero_limit_is_over(self):
        """Test that any spending against a zero limit is over budget."""
        assert BudgetStatus.from_totals(Decimal("0"), Decimal("0")).status == BudgetLevel.OVER


class TestNotifications:
    """Tests for notification models."""

    def test_severity(self):
        """Test per-type log severity."""
        assert Notification(event_type=EventType.SYNC_FAILED).severity == EventSeverity.WARNING
        assert Notification(event_type=EventType.SYNC_STARTED).severity == EventSeverity.DEBUG
        assert Notification(event_type=EventType.EXPENSE_CREATED).severity == EventSeverity.INFO

    def test_to_log_dict(self):
        """Test conversion to a structured log record."""
        expense = Expense(id="exp_1", amount=Decimal("1"))
        log_dict = Notification(event_type=EventType.EXPENSE_CREATED, data=expense).to_log_dict()

        assert log_dict["event_type"] == "expense:created"
        assert log_dict["data"]["id"] == "exp_1"
        assert log_dict["data"]["amount"] == "1.00"
        assert "timestamp" in log_dict


class TestInferenceModels:
    """Tests for inference result models."""

    def test_request_type_kinds(self):
        """Test which request types carry expense data."""
        assert RequestType.EXPENSE_EXTRACTION.is_expense
        assert RequestType.VOICE_PARSE.is_expense
        assert not RequestType.INSIGHTS.is_expense

    def test_confidence_bounds(self):
        """Test that confidence is bounded between 0 and 1."""
        with pytest.raises(ValueError):
            ExtractionResult(amount=1.0, date="2025-01-01", confidence=1.5)

    def test_to_expense_data(self):
        """Test conversion to expense service input."""
        result = ExtractionResult(amount=4.5, merchant="Cafe", date="2025-01-01", items=["latte"])
        data = result.to_expense_data()
        assert data["amount"] == 4.5
        assert data["items"] == ["latte"]
        assert "confidence" not in data

    def test_insights_alias(self):
        """Test that insights accept the wire name for top category."""
        assert InsightsResult(topCategory="Food").top_category == "Food"
        assert InsightsResult(top_category="Food").top_category == "Food"
