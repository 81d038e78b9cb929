"""
Tests for the indexed expense store.

Test strategy:
1. Round trips through the key/value backend (fresh store = cold cache)
2. Index consistency across save, overwrite, update and delete
3. Query ordering and pagination
4. Cache bound and insertion-order eviction
5. Failure modes (corrupt values, backend outages)
"""

import datetime as dt
from decimal import Decimal

import pytest

from conftest import EventRecorder, expense_data
from expense_engine.errors import NotFoundError, StorageUnavailable, ValidationError
from expense_engine.models.events import EventType
from expense_engine.models.expense import Budget, ExpenseCategory
from expense_engine.services.storage import ExpenseStore
from expense_engine.services.storage.store import ALL_IDS_KEY


class TestSaveAndGet:
    """Tests for save() and get()."""

    @pytest.mark.asyncio
    async def test_save_assigns_unique_ids(self, store):
        """Test that every new expense gets a fresh id."""
        first = await store.save(expense_data())
        second = await store.save(expense_data())
        assert first.id and second.id
        assert first.id != second.id
        assert first.id.startswith("exp_")

    @pytest.mark.asyncio
    async def test_round_trip_through_backend(self, store, backend, bus, store_settings):
        """Test that a fresh store (cold cache) reads back what was saved."""
        saved = await store.save(expense_data(amount="$12.5", items=["latte", "bagel"]))

        cold = ExpenseStore(backend, bus=bus, settings=store_settings)
        loaded = await cold.get(saved.id)

        assert loaded == saved
        assert loaded.amount == Decimal("12.50")
        assert loaded.items == ["latte", "bagel"]

    @pytest.mark.asyncio
    async def test_keys_are_prefixed(self, store, backend, store_settings):
        """Test that nothing is written outside the store's key prefix."""
        await store.save(expense_data())
        assert backend.keys()
        assert all(key.startswith(store_settings.key_prefix) for key in backend.keys())

    @pytest.mark.asyncio
    async def test_save_normalizes_fields(self, store):
        """Test amount, category and merchant normalization on save."""
        saved = await store.save({"amount": "7", "category": "food & dining", "merchant": ""})
        assert saved.amount == Decimal("7.00")
        assert saved.category == ExpenseCategory.FOOD
        assert saved.merchant == "Unknown"
        assert saved.date == dt.date.today()

    @pytest.mark.asyncio
    async def test_unknown_category_becomes_other(self, store):
        """Test that categories outside the fixed set are coerced."""
        saved = await store.save(expense_data(category="Spaceships"))
        assert saved.category == ExpenseCategory.OTHER

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, store, backend):
        """Test that a negative amount never reaches the backend."""
        with pytest.raises(ValidationError) as exc_info:
            await store.save(expense_data(amount="-5"))
        assert exc_info.value.field == "amount"
        assert len(backend) == 0

    @pytest.mark.asyncio
    async def test_save_emits_created(self, store, bus):
        """Test that a new expense is announced."""
        recorder = EventRecorder(bus, EventType.EXPENSE_CREATED, EventType.EXPENSE_UPDATED)
        saved = await store.save(expense_data())
        assert [n.event_type for n in recorder.notifications] == [EventType.EXPENSE_CREATED]
        assert recorder.notifications[0].data.id == saved.id

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        """Test that an unknown id reads as absent."""
        assert await store.get("exp_0_missing") is None


class TestQuery:
    """Tests for query() ordering, filters and pagination."""

    @pytest.mark.asyncio
    async def test_category_and_page_scenario(self, store):
        """Test the canonical three-record ordering scenario."""
        a = await store.save(expense_data("12.00", "Cafe", "Food", "2025-01-01"))
        b = await store.save(expense_data("40.00", "Market", "Groceries", "2025-01-01"))
        c = await store.save(expense_data("5.00", "Cafe", "Food", "2025-01-02"))

        food = await store.query({"category": "Food"})
        assert food.ids == [c.id, a.id]

        page = await store.query({}, {"offset": 0, "limit": 2})
        assert page.ids == [c.id, b.id]
        assert page.has_more is True
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_pages_concatenate_to_full_result(self, store):
        """Test that consecutive pages cover the sorted result exactly once."""
        for day in range(1, 8):
            await store.save(expense_data(amount=day, date=f"2025-03-0{day}"))

        full = await store.query({}, {"offset": 0, "limit": 100})
        collected = []
        offset = 0
        while True:
            page = await store.query({}, {"offset": offset, "limit": 3})
            collected.extend(page.ids)
            if not page.has_more:
                break
            offset += 3

        assert collected == full.ids
        assert len(collected) == 7

    @pytest.mark.asyncio
    async def test_date_range_filter(self, store):
        """Test inclusive day-granularity range queries."""
        await store.save(expense_data(date="2025-01-01"))
        inside = await store.save(expense_data(date="2025-01-02"))
        edge = await store.save(expense_data(date="2025-01-03"))
        await store.save(expense_data(date="2025-01-04"))

        page = await store.query({"date_range": {"start": "2025-01-02", "end": "2025-01-03"}})
        assert page.ids == [edge.id, inside.id]

    @pytest.mark.asyncio
    async def test_date_range_takes_priority(self, store):
        """Test that only the highest-priority filter applies."""
        cafe = await store.save(expense_data(merchant="Cafe", category="Food", date="2025-01-01"))
        market = await store.save(expense_data(merchant="Market", category="Groceries", date="2025-01-01"))

        page = await store.query({
            "date_range": {"start": "2025-01-01", "end": "2025-01-01"},
            "category": "Food",
        })
        assert set(page.ids) == {cafe.id, market.id}

    @pytest.mark.asyncio
    async def test_merchant_filter(self, store):
        """Test the merchant index."""
        cafe = await store.save(expense_data(merchant="Cafe"))
        await store.save(expense_data(merchant="Market"))

        page = await store.query({"merchant": "Cafe"})
        assert page.ids == [cafe.id]

    @pytest.mark.asyncio
    async def test_empty_range_returns_nothing(self, store):
        """Test that start > end is an empty result, not an error."""
        await store.save(expense_data(date="2025-01-01"))
        page = await store.query({"date_range": {"start": "2025-01-05", "end": "2025-01-01"}})
        assert page.total == 0
        assert page.has_more is False


class TestIndexConsistency:
    """Tests that index buckets always match the stored records."""

    @pytest.mark.asyncio
    async def test_update_moves_index_buckets(self, store):
        """Test that changing category/merchant/date re-indexes the record."""
        saved = await store.save(expense_data(merchant="Cafe", category="Food", date="2025-01-01"))

        updated = await store.update(saved.id, {
            "category": "Groceries",
            "merchant": "Market",
            "date": "2025-01-05",
        })

        assert updated.id == saved.id
        assert updated.timestamp == saved.timestamp
        assert (await store.query({"category": "Food"})).total == 0
        assert (await store.query({"merchant": "Cafe"})).total == 0
        assert (await store.query({"category": "Groceries"})).ids == [saved.id]
        assert (await store.query({"merchant": "Market"})).ids == [saved.id]
        day = await store.query({"date_range": {"start": "2025-01-01", "end": "2025-01-01"}})
        assert day.total == 0

    @pytest.mark.asyncio
    async def test_resave_overwrites_and_keeps_timestamp(self, store, bus):
        """Test that saving an existing id is an overwrite."""
        saved = await store.save(expense_data(category="Food"))
        recorder = EventRecorder(bus, EventType.EXPENSE_UPDATED)

        again = await store.save(saved.model_copy(update={"category": ExpenseCategory.HEALTH}))

        assert again.id == saved.id
        assert again.timestamp == saved.timestamp
        assert len(recorder.notifications) == 1
        assert (await store.query({"category": "Food"})).total == 0
        assert (await store.query({})).total == 1

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store):
        """Test that updating an unknown id fails loudly."""
        with pytest.raises(NotFoundError):
            await store.update("exp_0_missing", {"amount": "1"})

    @pytest.mark.asyncio
    async def test_delete_removes_every_index_entry(self, store, bus):
        """Test that a deleted record is unreachable by any query."""
        saved = await store.save(expense_data(merchant="Cafe", category="Food", date="2025-01-01"))
        recorder = EventRecorder(bus, EventType.EXPENSE_DELETED)

        assert await store.delete(saved.id) is True

        assert await store.get(saved.id) is None
        assert (await store.query({})).total == 0
        assert (await store.query({"category": "Food"})).total == 0
        assert (await store.query({"merchant": "Cafe"})).total == 0
        assert await store.read_value(ALL_IDS_KEY) == []
        assert len(recorder.notifications) == 1

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, store):
        """Test that deleting nothing is not an error."""
        assert await store.delete("exp_0_missing") is False


class TestCache:
    """Tests for the bounded insertion-order cache."""

    @pytest.mark.asyncio
    async def test_cache_is_bounded(self, store):
        """Test that the cache keeps only the most recently inserted records."""
        saved = [await store.save(expense_data(amount=i)) for i in range(150)]

        cached = store.cached_ids()
        assert len(cached) == 100
        assert cached == [expense.id for expense in saved[50:]]
        for expense in saved:
            assert await store.get(expense.id) == expense

    @pytest.mark.asyncio
    async def test_evicted_records_still_readable(self, store):
        """Test that eviction only drops the cached copy."""
        saved = [await store.save(expense_data(amount=i)) for i in range(110)]
        oldest = saved[0]
        assert oldest.id not in store.cached_ids()

        loaded = await store.get(oldest.id)
        assert loaded == oldest

    @pytest.mark.asyncio
    async def test_update_keeps_cache_position(self, store_settings, backend, bus):
        """Test that re-inserting a cached id does not refresh its position."""
        small = ExpenseStore(backend, bus=bus, settings=store_settings.model_copy(update={"cache_size": 2}))
        first = await small.save(expense_data(amount=1))
        second = await small.save(expense_data(amount=2))

        await small.update(first.id, {"amount": "3"})
        third = await small.save(expense_data(amount=4))

        assert small.cached_ids() == [second.id, third.id]


class TestSearch:
    """Tests for batched text search."""

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, store):
        """Test matching against merchant, description and category."""
        cafe = await store.save(expense_data(merchant="Blue Bottle Cafe"))
        desc = await store.save(expense_data(merchant="Shop", description="cafe beans", category="Shopping"))
        await store.save(expense_data(merchant="Garage", category="Transportation"))

        results = await store.search("CAFE")
        assert {expense.id for expense in results} == {cafe.id, desc.id}

    @pytest.mark.asyncio
    async def test_search_respects_limit(self, store_settings, backend, bus):
        """Test that search stops once enough matches are found."""
        batched = ExpenseStore(backend, bus=bus, settings=store_settings.model_copy(update={"search_batch_size": 2}))
        for i in range(7):
            await batched.save(expense_data(amount=i, merchant="Cafe"))

        results = await batched.search("cafe", limit=3)
        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_search_no_match(self, store):
        """Test that an unmatched needle returns an empty list."""
        await store.save(expense_data(merchant="Cafe"))
        assert await store.search("zzz") == []


class TestFailureModes:
    """Tests for corrupt values and backend outages."""

    @pytest.mark.asyncio
    async def test_corrupt_record_reads_as_absent(self, store, backend, bus, store_settings):
        """Test that an undecodable record is reported as missing."""
        saved = await store.save(expense_data())
        key = f"{store_settings.key_prefix}expense_{saved.id}"
        await backend.set(key, "not-a-valid-record!!")

        cold = ExpenseStore(backend, bus=bus, settings=store_settings)
        assert await cold.get(saved.id) is None
        assert (await cold.query({})).total == 0

    @pytest.mark.asyncio
    async def test_backend_outage_propagates(self, store, backend):
        """Test that a failed write reaches the caller."""
        backend.fail_writes = True
        with pytest.raises(StorageUnavailable):
            await store.save(expense_data())


class TestConvenience:
    """Tests for today(), budgets and preferences."""

    @pytest.mark.asyncio
    async def test_today_total(self, store):
        """Test that only today's expenses are summed."""
        await store.save(expense_data(amount="10.25", date=None))
        await store.save(expense_data(amount="4.75", date=dt.date.today().isoformat()))
        await store.save(expense_data(amount="100", date="2001-01-01"))

        assert (await store.today()).total == 2
        assert await store.today_total() == Decimal("15.00")

    @pytest.mark.asyncio
    async def test_budget_defaults_and_update(self, store, bus):
        """Test budget defaults, persistence and notification."""
        assert await store.get_budget() == Budget()

        recorder = EventRecorder(bus, EventType.BUDGET_UPDATED)
        await store.set_budget({"daily": "50", "weekly": "300", "monthly": "1200"})

        budget = await store.get_budget()
        assert budget.daily == Decimal("50")
        assert len(recorder.notifications) == 1

    @pytest.mark.asyncio
    async def test_preferences(self, store):
        """Test preference defaults and round trip."""
        assert await store.get_preference("theme", "dark") == "dark"
        await store.set_preference("theme", "light")
        assert await store.get_preference("theme") == "light"
