"""
Main Orchestrator for the Expense Engine

This module ties together all the components and defines the
end-to-end flows for:
1. Capture (raw fields -> normalize -> save -> journal sync, fire-and-forget)
2. Review (today / week / month, search, per-category spending)
3. Budgets (limits and how today's / this week's spending compares)

DESIGN DECISION: There are no module-level singletons. Every component
is built once by create_app_components() and wired explicitly, so tests
and hosts can run several independent engines side by side.

Journal sync never blocks capture: create_expense() returns as soon as
the record is stored. Sync outcomes are observable only through the
event bus.
"""

import datetime as dt
import sys
from decimal import Decimal
from typing import Any, Optional, Union

import structlog

from expense_engine.agents import ExpenseAgent, summarize_by_category
from expense_engine.config import Settings, get_settings, validate_all_settings
from expense_engine.events import EventBus, configure_logging
from expense_engine.models.expense import (
    Budget,
    BudgetStatus,
    DateRange,
    Expense,
    ExpenseCategory,
    Pagination,
    QueryFilters,
    QueryPage,
)
from expense_engine.services.bridge import HostBridge
from expense_engine.services.inference import BridgeInferenceChannel, RequestCorrelator
from expense_engine.services.journal import BridgeJournalTransport, SyncQueue
from expense_engine.services.storage import (
    ExpenseStore,
    FileBackend,
    KeyValueBackend,
)
from expense_engine.validation import ExpenseValidator


logger = structlog.get_logger(__name__)

SYNC_PREFERENCE_KEY = "journal_sync_enabled"

_EVERYTHING = Pagination(limit=sys.maxsize)


def week_start(today: dt.date) -> dt.date:
    """The Sunday on or before `today`."""
    # date.weekday(): Monday=0 .. Sunday=6
    return today - dt.timedelta(days=(today.weekday() + 1) % 7)


class ExpenseService:
    """
    Business facade over the store and the journal sync queue.

    Flow for a new expense:
    1. Normalize -> amount, category, date checked (ValidationError)
    2. Save -> indexed, cached, expense:created emitted
    3. Enqueue -> journal delivery happens in the background
    """

    def __init__(self, store: ExpenseStore, sync_queue: SyncQueue):
        self._store = store
        self._sync_queue = sync_queue

    # -------------------------------------------------------------------------
    # Capture
    # -------------------------------------------------------------------------

    async def create_expense(self, data: Union[Expense, dict[str, Any]]) -> Expense:
        """
        Store a new expense and queue it for the journal.

        Raises:
            ValidationError: If the amount or date is invalid
            StorageUnavailable: If the backend cannot be written
        """
        saved = await self._store.save(data)
        self._sync_queue.enqueue(saved)
        return saved

    async def update_expense(self, expense_id: str, changes: dict[str, Any]) -> Expense:
        return await self._store.update(expense_id, changes)

    async def delete_expense(self, expense_id: str) -> bool:
        return await self._store.delete(expense_id)

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        return await self._store.get(expense_id)

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    async def get_expenses(
        self,
        filters: Union[QueryFilters, dict, None] = None,
        pagination: Union[Pagination, dict, None] = None,
    ) -> QueryPage:
        return await self._store.query(filters, pagination)

    async def get_today_expenses(self) -> QueryPage:
        return await self._store.today()

    async def get_today_total(self) -> Decimal:
        return await self._store.today_total()

    async def get_week_expenses(self, pagination: Union[Pagination, dict, None] = None) -> QueryPage:
        """Expenses from the most recent Sunday through today."""
        today = dt.date.today()
        filters = QueryFilters(date_range=DateRange(start=week_start(today), end=today))
        return await self._store.query(filters, pagination)

    async def get_month_expenses(self, pagination: Union[Pagination, dict, None] = None) -> QueryPage:
        today = dt.date.today()
        filters = QueryFilters(date_range=DateRange(start=today.replace(day=1), end=today))
        return await self._store.query(filters, pagination)

    async def search_expenses(self, text: str, limit: int = 20) -> list[Expense]:
        return await self._store.search(text, limit)

    async def get_spending_by_category(
        self,
        date_range: Union[DateRange, dict, None] = None,
    ) -> dict[str, Decimal]:
        """
        Total spent per category over a date range (default: this month).

        Only categories with at least one expense appear.
        """
        if date_range is None:
            page = await self.get_month_expenses(_EVERYTHING)
        else:
            if isinstance(date_range, dict):
                date_range = DateRange.model_validate(date_range)
            page = await self._store.query(QueryFilters(date_range=date_range), _EVERYTHING)

        return summarize_by_category(page.expenses)

    def get_categories(self) -> list[str]:
        return [category.value for category in ExpenseCategory]

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def get_budget(self) -> Budget:
        return await self._store.get_budget()

    async def set_budget(self, budget: Union[Budget, dict[str, Any]]) -> Budget:
        return await self._store.set_budget(budget)

    async def get_daily_budget_status(self) -> BudgetStatus:
        budget = await self.get_budget()
        spent = await self.get_today_total()
        return BudgetStatus.from_totals(spent, budget.daily)

    async def get_weekly_budget_status(self) -> BudgetStatus:
        budget = await self.get_budget()
        page = await self.get_week_expenses(_EVERYTHING)
        spent = sum((expense.amount for expense in page.expenses), Decimal("0.00"))
        return BudgetStatus.from_totals(spent, budget.weekly)

    # -------------------------------------------------------------------------
    # Journal sync preference
    # -------------------------------------------------------------------------

    async def set_sync_enabled(self, enabled: bool) -> None:
        """Toggle journal sync and remember the choice across restarts."""
        await self._store.set_preference(SYNC_PREFERENCE_KEY, enabled)
        self._sync_queue.set_enabled(enabled)

    async def load_sync_preference(self) -> bool:
        """Apply the stored sync preference (if any) to the queue."""
        enabled = await self._store.get_preference(SYNC_PREFERENCE_KEY)
        if enabled is None:
            return self._sync_queue.enabled
        self._sync_queue.set_enabled(bool(enabled))
        return bool(enabled)


class AppContext:
    """One fully wired engine. Build it with create_app_components()."""

    def __init__(
        self,
        bus: EventBus,
        store: ExpenseStore,
        sync_queue: SyncQueue,
        correlator: RequestCorrelator,
        agent: ExpenseAgent,
        service: ExpenseService,
    ):
        self.bus = bus
        self.store = store
        self.sync_queue = sync_queue
        self.correlator = correlator
        self.agent = agent
        self.service = service

    def handle_host_message(self, data: Union[dict[str, Any], str]) -> bool:
        """Inbound host message handler; routes to the request correlator."""
        return self.correlator.handle_response(data)

    async def close(self) -> None:
        """Stop the sync timers and reject every pending inference request."""
        await self.sync_queue.close()
        await self.correlator.close()
        self.bus.clear()
        logger.info("app_context_closed")


def create_app_components(
    backend: Optional[KeyValueBackend] = None,
    bridge: Optional[HostBridge] = None,
    settings: Optional[Settings] = None,
) -> AppContext:
    """
    Factory function to create all application components.

    Args:
        backend: Key/value backend. Defaults to a FileBackend under
                 settings.store.data_dir.
        bridge: Host message bridge. Without one, journal deliveries fail
                (and are retried / dead-lettered) and inference requests
                are rejected with TransportUnavailable.
        settings: Settings root. Defaults to get_settings().

    Returns:
        The wired AppContext

    Raises:
        ValueError: If any settings group fails validation
    """
    settings = settings or get_settings()
    checks = validate_all_settings(settings)
    failed = [name for name, ok in checks.items() if ok is False]
    if failed:
        details = "; ".join(f"{name}: {checks[name + '_error']}" for name in failed)
        raise ValueError(f"Invalid settings: {details}")

    app_settings = settings.app
    store_settings = settings.store

    configure_logging(app_settings.effective_log_level, json_logs=app_settings.json_logs)
    logger.info(
        "engine_starting",
        environment=app_settings.app_environment,
        debug_mode=app_settings.debug_mode,
    )

    if backend is None:
        backend = FileBackend(store_settings.data_dir)
    if bridge is None:
        logger.warning("host_bridge_not_configured")

    bus = EventBus()
    store = ExpenseStore(backend, bus=bus, settings=store_settings, validator=ExpenseValidator())
    sync_queue = SyncQueue(
        BridgeJournalTransport(bridge),
        store,
        bus=bus,
        settings=settings.sync,
    )
    inference_settings = settings.inference
    channel = BridgeInferenceChannel(bridge) if bridge is not None else None
    correlator = RequestCorrelator(channel, settings=inference_settings)
    agent = ExpenseAgent(correlator, settings=inference_settings)
    service = ExpenseService(store, sync_queue)

    return AppContext(
        bus=bus,
        store=store,
        sync_queue=sync_queue,
        correlator=correlator,
        agent=agent,
        service=service,
    )
