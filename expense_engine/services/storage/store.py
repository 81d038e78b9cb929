"""
Indexed Expense Store

DESIGN DECISION: The backend is a flat key/value store, so we maintain
our own secondary indexes on top of it:

    expense_<id>            primary record
    idx_date_<YYYY-MM-DD>   ids of expenses on that day
    idx_category_<name>     ids of expenses in that category
    idx_merchant_<name>     ids of expenses at that merchant
    all_expense_ids         ids of every stored expense

Every key is prefixed (settings.key_prefix) so the store can share the
backend with other data.

TRADEOFFS:
- No transactions. The primary record is written first, then the
  indexes. A crash in between leaves a record that some index does not
  list yet (known, accepted window).
- A corrupt stored value reads as "absent". Callers cannot tell
  missing from corrupt; the decode failure is logged.
- Mutations are serialized with an asyncio.Lock so two coroutines
  updating the same index bucket cannot lose each other's writes.

The in-memory cache is bounded and evicts in pure insertion order
(oldest inserted first), not by access recency.
"""

import asyncio
import sys
import time
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import uuid4

import structlog

from expense_engine.config import StoreSettings, get_settings
from expense_engine.errors import DecodeError, NotFoundError
from expense_engine.events import EventBus
from expense_engine.models.events import EventType
from expense_engine.models.expense import (
    Budget,
    DateRange,
    Expense,
    ExpenseCategory,
    Pagination,
    QueryFilters,
    QueryPage,
)
from expense_engine.services.storage import codec
from expense_engine.services.storage.interface import KeyValueBackend
from expense_engine.validation import ExpenseValidator


logger = structlog.get_logger(__name__)

INDEX_BY_DATE = "idx_date"
INDEX_BY_CATEGORY = "idx_category"
INDEX_BY_MERCHANT = "idx_merchant"
ALL_IDS_KEY = "all_expense_ids"
BUDGET_KEY = "budget"
PREFERENCES_KEY = "preferences"


def _index_keys(expense: Expense) -> dict[str, str]:
    """The bucket an expense belongs to, per index."""
    return {
        INDEX_BY_DATE: expense.date_key,
        INDEX_BY_CATEGORY: expense.category.value,
        INDEX_BY_MERCHANT: expense.merchant,
    }


class ExpenseStore:
    """
    Indexed CRUD over expenses on top of a key/value backend.

    Emits expense:created / expense:updated / expense:deleted and
    budget:updated on the event bus.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        bus: Optional[EventBus] = None,
        settings: Optional[StoreSettings] = None,
        validator: Optional[ExpenseValidator] = None,
    ):
        self._backend = backend
        self._bus = bus or EventBus()
        self._settings = settings or get_settings().store
        self._validator = validator or ExpenseValidator()
        self._cache: OrderedDict[str, Expense] = OrderedDict()
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def save(self, expense: Union[Expense, dict]) -> Expense:
        """
        Normalize and store an expense, assigning an id if it has none.

        Re-saving an existing id overwrites it (keeping its original
        timestamp) and moves it out of any index bucket it no longer
        belongs to.

        Raises:
            ValidationError: If the amount (or date) cannot be normalized
            StorageUnavailable: If the backend write fails
        """
        record = self._validator.normalize(expense)

        async with self._lock:
            previous = None
            if record.id is None:
                record = record.model_copy(update={"id": self._generate_id()})
            else:
                previous = await self._load(record.id)
                if previous is not None:
                    record = record.model_copy(update={"timestamp": previous.timestamp})

            await self._set_item(self._record_key(record.id), record)
            if previous is not None:
                await self._unindex(previous, current=record)
            await self._index(record)
            self._cache_put(record)

        logger.info("expense_saved", expense_id=record.id, amount=str(record.amount))
        if previous is None:
            self._bus.emit(EventType.EXPENSE_CREATED, record)
        else:
            self._bus.emit(EventType.EXPENSE_UPDATED, record)
        return record

    async def update(self, expense_id: str, changes: Union[Expense, dict]) -> Expense:
        """
        Merge changes into an existing expense.

        The id and timestamp never change. Index buckets follow the new
        date/category/merchant.

        Raises:
            NotFoundError: If no expense has this id
            ValidationError: If the merged expense cannot be normalized
        """
        async with self._lock:
            existing = await self.get(expense_id)
            if existing is None:
                raise NotFoundError(f"Expense not found: {expense_id}")

            record = self._validator.normalize(changes, existing=existing)
            await self._set_item(self._record_key(expense_id), record)
            await self._unindex(existing, current=record)
            await self._index(record)
            self._cache_put(record)

        self._bus.emit(EventType.EXPENSE_UPDATED, record)
        return record

    async def get(self, expense_id: str) -> Optional[Expense]:
        """Cache first, then backend. None if absent (or unreadable)."""
        if expense_id in self._cache:
            return self._cache[expense_id]

        expense = await self._load(expense_id)
        if expense is not None:
            self._cache_put(expense)
        return expense

    async def delete(self, expense_id: str) -> bool:
        """
        Remove an expense and every index entry pointing at it.

        Returns:
            False if there was nothing to delete, True otherwise
        """
        async with self._lock:
            expense = await self.get(expense_id)
            if expense is None:
                return False

            await self._backend.remove(self._key(self._record_key(expense_id)))
            await self._unindex(expense)
            await self._remove_from_bucket(ALL_IDS_KEY, expense_id)
            self._cache.pop(expense_id, None)

        logger.info("expense_deleted", expense_id=expense_id)
        self._bus.emit(EventType.EXPENSE_DELETED, expense)
        return True

    async def query(
        self,
        filters: Union[QueryFilters, dict, None] = None,
        pagination: Union[Pagination, dict, None] = None,
    ) -> QueryPage:
        """
        Query expenses using the best index, newest first.

        Only one filter applies, in priority order:
        date_range > category > merchant > none.
        """
        if isinstance(filters, dict):
            filters = QueryFilters.model_validate(filters)
        if isinstance(pagination, dict):
            pagination = Pagination.model_validate(pagination)
        filters = filters or QueryFilters()
        pagination = pagination or Pagination(limit=self._settings.default_page_size)

        expenses = await self._collect(filters)
        total = len(expenses)
        window = expenses[pagination.offset:pagination.offset + pagination.limit]

        return QueryPage(
            expenses=window,
            total=total,
            has_more=pagination.offset + pagination.limit < total,
        )

    async def search(self, text: str, limit: int = 20) -> list[Expense]:
        """
        Case-insensitive substring search over merchant, description and
        category.

        Loads expenses in batches and stops as soon as `limit` matches are
        found, so memory stays bounded on large stores.
        """
        needle = text.lower()
        all_ids = await self._get_bucket(ALL_IDS_KEY)
        batch_size = self._settings.search_batch_size
        matches: list[Expense] = []

        for start in range(0, len(all_ids), batch_size):
            if len(matches) >= limit:
                break
            batch = await self._batch_load(all_ids[start:start + batch_size])
            for expense in batch:
                if len(matches) >= limit:
                    break
                if needle in expense.searchable_text():
                    matches.append(expense)

        return matches

    async def today(self) -> QueryPage:
        """All of today's expenses."""
        today = date.today()
        filters = QueryFilters(date_range=DateRange(start=today, end=today))
        return await self.query(filters, Pagination(limit=sys.maxsize))

    async def today_total(self) -> Decimal:
        page = await self.today()
        return sum((expense.amount for expense in page.expenses), Decimal("0.00"))

    # -------------------------------------------------------------------------
    # Budget and preferences
    # -------------------------------------------------------------------------

    async def get_budget(self) -> Budget:
        stored = await self.read_value(BUDGET_KEY)
        if not stored:
            return Budget()
        return Budget.model_validate(stored)

    async def set_budget(self, budget: Union[Budget, dict]) -> Budget:
        if isinstance(budget, dict):
            budget = Budget.model_validate(budget)
        await self.write_value(BUDGET_KEY, budget)
        self._bus.emit(EventType.BUDGET_UPDATED, budget)
        return budget

    async def get_preference(self, key: str, default: Any = None) -> Any:
        prefs = await self.read_value(PREFERENCES_KEY) or {}
        return prefs.get(key, default)

    async def set_preference(self, key: str, value: Any) -> None:
        prefs = await self.read_value(PREFERENCES_KEY) or {}
        prefs[key] = value
        await self.write_value(PREFERENCES_KEY, prefs)

    # -------------------------------------------------------------------------
    # Auxiliary keys (shared with the sync queue's dead-letter list)
    # -------------------------------------------------------------------------

    async def read_value(self, key: str) -> Any:
        """Decoded value stored under an auxiliary key, or None."""
        return await self._get_item(key)

    async def write_value(self, key: str, value: Any) -> None:
        await self._set_item(key, value)

    # -------------------------------------------------------------------------
    # Cache introspection
    # -------------------------------------------------------------------------

    def cached_ids(self) -> list[str]:
        """Cached ids, oldest inserted first."""
        return list(self._cache)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _key(self, key: str) -> str:
        return self._settings.key_prefix + key

    @staticmethod
    def _record_key(expense_id: str) -> str:
        return f"expense_{expense_id}"

    @staticmethod
    def _generate_id() -> str:
        return f"exp_{int(time.time() * 1000)}_{uuid4().hex[:9]}"

    async def _set_item(self, key: str, value: Any) -> None:
        await self._backend.set(self._key(key), codec.encode(value))

    async def _get_item(self, key: str) -> Any:
        encoded = await self._backend.get(self._key(key))
        if not encoded:
            return None
        try:
            return codec.decode(encoded)
        except DecodeError as e:
            logger.warning("stored_value_unreadable", key=key, error=str(e))
            return None

    async def _load(self, expense_id: str) -> Optional[Expense]:
        key = self._record_key(expense_id)
        encoded = await self._backend.get(self._key(key))
        if not encoded:
            return None
        try:
            return codec.decode_expense(encoded)
        except DecodeError as e:
            logger.warning("stored_value_unreadable", key=key, error=str(e))
            return None

    async def _batch_load(self, expense_ids: list[str]) -> list[Expense]:
        """Load expenses cache-first, skipping ids with no readable record."""
        expenses = []
        for expense_id in expense_ids:
            expense = self._cache.get(expense_id)
            if expense is None:
                expense = await self._load(expense_id)
                if expense is None:
                    continue
                self._cache[expense_id] = expense
            expenses.append(expense)
        self._prune_cache()
        return expenses

    async def _collect(self, filters: QueryFilters) -> list[Expense]:
        """Every expense matching the filters, sorted newest first."""
        candidate_ids = await self._candidate_ids(filters)
        position = {expense_id: pos for pos, expense_id in enumerate(candidate_ids)}
        expenses = await self._batch_load(candidate_ids)
        # Same-day ties: newest timestamp first, then most recently indexed
        expenses.sort(
            key=lambda e: (e.date, e.timestamp, position[e.id]),
            reverse=True,
        )
        return expenses

    async def _candidate_ids(self, filters: QueryFilters) -> list[str]:
        if filters.date_range is not None:
            seen: dict[str, None] = {}
            for day in filters.date_range.days():
                for expense_id in await self._get_bucket(self._bucket_key(INDEX_BY_DATE, day)):
                    seen.setdefault(expense_id, None)
            return list(seen)

        if filters.category:
            category = ExpenseCategory.match(filters.category)
            name = category.value if category else filters.category
            return await self._get_bucket(self._bucket_key(INDEX_BY_CATEGORY, name))

        if filters.merchant:
            return await self._get_bucket(self._bucket_key(INDEX_BY_MERCHANT, filters.merchant))

        return await self._get_bucket(ALL_IDS_KEY)

    @staticmethod
    def _bucket_key(index_name: str, value: str) -> str:
        return f"{index_name}_{value}"

    async def _get_bucket(self, key: str) -> list[str]:
        entries = await self._get_item(key)
        return list(entries) if isinstance(entries, list) else []

    async def _add_to_bucket(self, key: str, expense_id: str) -> None:
        entries = await self._get_bucket(key)
        if expense_id not in entries:
            entries.append(expense_id)
            await self._set_item(key, entries)

    async def _remove_from_bucket(self, key: str, expense_id: str) -> None:
        entries = await self._get_bucket(key)
        if expense_id in entries:
            await self._set_item(key, [e for e in entries if e != expense_id])

    async def _index(self, expense: Expense) -> None:
        for index_name, value in _index_keys(expense).items():
            await self._add_to_bucket(self._bucket_key(index_name, value), expense.id)
        await self._add_to_bucket(ALL_IDS_KEY, expense.id)

    async def _unindex(self, expense: Expense, current: Optional[Expense] = None) -> None:
        """
        Remove an expense from its index buckets.

        With `current`, only buckets the current version no longer belongs
        to are touched.
        """
        keep = _index_keys(current) if current is not None else {}
        for index_name, value in _index_keys(expense).items():
            if keep.get(index_name) == value:
                continue
            await self._remove_from_bucket(self._bucket_key(index_name, value), expense.id)

    def _cache_put(self, expense: Expense) -> None:
        # Re-inserting an existing id keeps its original position
        self._cache[expense.id] = expense
        self._prune_cache()

    def _prune_cache(self) -> None:
        while len(self._cache) > self._settings.cache_size:
            self._cache.popitem(last=False)
