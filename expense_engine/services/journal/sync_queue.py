"""
Offline-First Journal Sync Queue

DESIGN DECISION: Journal sync is fire-and-forget. enqueue() returns
immediately; the caller never learns whether delivery succeeded. Progress
and failures are observable only through notifications:

    journal:sync_started  -> a drain began
    journal:synced        -> one job delivered
    journal:sync_failed   -> one job exhausted its retries (dead-lettered)
    journal:sync_completed-> the queue is empty

STATE MACHINE:
    idle (empty) -> draining (one drain loop at a time) -> idle

A drain delivers jobs strictly FIFO with at most one attempt in flight.
On a failure the job's retry counter goes up and the drain stops; the
queue re-drains after a fixed interval (settings.retry_interval_seconds).
The exponential backoff value is computed and logged for every retry but
does not drive the timer - the re-drain cadence is always the fixed
interval. A job failing more than settings.max_retries times is moved to
a persisted dead-letter list and the drain moves on to the next job.
"""

import asyncio
from collections import deque
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from expense_engine.config import SyncSettings, get_settings
from expense_engine.errors import (
    StorageError,
    SyncDeliveryFailure,
    SyncError,
    SyncExhausted,
    SyncTimeout,
)
from expense_engine.events import EventBus
from expense_engine.models.events import EventType
from expense_engine.models.expense import Expense, SyncJob, SyncStatus, utc_now
from expense_engine.services.journal.transport import (
    JournalTransport,
    format_journal_entry,
)
from expense_engine.services.storage import ExpenseStore


logger = structlog.get_logger(__name__)

DEAD_LETTER_KEY = "failed_syncs"


class SyncQueue:
    """
    Durable-enough delivery of "expense logged" entries to the journal.

    The live queue is in memory. Only exhausted jobs are persisted
    (through the store's auxiliary keys) so they survive a restart and can
    be retried with retry_failed_syncs().
    """

    def __init__(
        self,
        transport: JournalTransport,
        store: ExpenseStore,
        bus: Optional[EventBus] = None,
        settings: Optional[SyncSettings] = None,
    ):
        self._transport = transport
        self._store = store
        self._bus = bus or EventBus()
        self._settings = settings or get_settings().sync
        self._queue: deque[SyncJob] = deque()
        self._enabled = self._settings.enabled
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None
        self._retry_handle: Optional[asyncio.TimerHandle] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Turn syncing on or off. Turning it on drains anything queued."""
        self._enabled = enabled
        logger.info("journal_sync_toggled", enabled=enabled)
        if enabled and self._queue:
            self._schedule_drain()

    def enqueue(self, expense: Expense) -> Optional[SyncJob]:
        """
        Queue an expense for journal delivery and kick off a drain.

        Returns the queued job, or None when syncing is disabled (the
        expense is dropped, not held for later).
        """
        if not self._enabled:
            logger.info("journal_sync_disabled", expense_id=expense.id)
            return None

        job = SyncJob(expense=expense.model_copy(deep=True))
        self._queue.append(job)
        self._schedule_drain()
        return job

    async def drain(self) -> None:
        """
        Deliver queued jobs until the queue is empty or a delivery fails.

        Returns immediately if a drain is already running, the queue is
        empty, or syncing is disabled.
        """
        if self._draining or not self._queue or not self._enabled:
            return

        self._draining = True
        self._cancel_retry_timer()
        self._bus.emit(EventType.SYNC_STARTED, {"queue_length": len(self._queue)})

        try:
            while self._queue:
                job = self._queue[0]
                try:
                    await self._deliver(job)
                except SyncError as e:
                    job.retries += 1

                    if job.retries > self._settings.max_retries:
                        self._pop(job)
                        exhausted = SyncExhausted(job.expense.id, job.retries)
                        logger.warning("journal_sync_exhausted", error=str(exhausted))
                        await self._save_to_dead_letter(job)
                        self._bus.emit(EventType.SYNC_FAILED, job.model_copy(deep=True))
                        continue

                    logger.info(
                        "journal_sync_retry_scheduled",
                        expense_id=job.expense.id,
                        error=str(e),
                        retries=job.retries,
                        max_retries=self._settings.max_retries,
                        backoff_ms=self.compute_backoff_ms(job.retries),
                        retry_in_seconds=self._settings.retry_interval_seconds,
                    )
                    break

                self._pop(job)
                self._bus.emit(EventType.SYNCED, job.model_copy(deep=True))
        finally:
            self._draining = False

        if self._queue:
            self._arm_retry_timer()
        else:
            self._bus.emit(EventType.SYNC_COMPLETED)

    async def wait_idle(self) -> None:
        """Wait for the drain currently scheduled or running, if any."""
        if self._drain_task is not None and not self._drain_task.done():
            await self._drain_task

    async def get_failed_syncs(self) -> list[SyncJob]:
        """Dead-lettered jobs, oldest first."""
        stored = await self._store.read_value(DEAD_LETTER_KEY) or []
        jobs = []
        for entry in stored:
            try:
                jobs.append(SyncJob.model_validate(entry))
            except PydanticValidationError as e:
                logger.warning("dead_letter_entry_unreadable", error=str(e))
        return jobs

    async def retry_failed_syncs(self) -> int:
        """
        Move every dead-lettered job back to the live queue with its retry
        counter reset, then drain.

        Returns:
            Number of jobs requeued
        """
        failed = await self.get_failed_syncs()
        if not failed:
            return 0

        await self._store.write_value(DEAD_LETTER_KEY, [])
        for job in failed:
            self._queue.append(job.model_copy(update={"retries": 0, "failed_at": None}))

        logger.info("journal_sync_requeued", count=len(failed))
        await self.drain()
        return len(failed)

    def status(self) -> SyncStatus:
        return SyncStatus(
            enabled=self._enabled,
            syncing=self._draining,
            queue_length=len(self._queue),
        )

    def pending_jobs(self) -> list[SyncJob]:
        """Snapshot of the live queue, head first."""
        return [job.model_copy(deep=True) for job in self._queue]

    def clear_queue(self) -> None:
        """Drop every live job. Dead-lettered jobs are kept."""
        self._queue.clear()
        self._cancel_retry_timer()

    def compute_backoff_ms(self, retries: int) -> int:
        """Exponential backoff for a retry count, capped at backoff_max_ms."""
        return min(
            self._settings.backoff_base_ms * (2 ** retries),
            self._settings.backoff_max_ms,
        )

    async def close(self) -> None:
        """Cancel the re-drain timer and any running drain."""
        self._cancel_retry_timer()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        self._drain_task = None

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _deliver(self, job: SyncJob) -> None:
        message = format_journal_entry(job.expense)
        try:
            await asyncio.wait_for(
                self._transport.deliver(message),
                timeout=self._settings.attempt_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise SyncTimeout("Journal sync timeout")
        except SyncError:
            raise
        except Exception as e:
            raise SyncDeliveryFailure(str(e)) from e

    def _pop(self, job: SyncJob) -> None:
        # clear_queue() may have emptied the queue during the attempt
        if self._queue and self._queue[0] is job:
            self._queue.popleft()

    async def _save_to_dead_letter(self, job: SyncJob) -> None:
        job.failed_at = utc_now()
        try:
            failed = await self._store.read_value(DEAD_LETTER_KEY) or []
            failed.append(job.model_dump(mode="json"))
            failed = failed[-self._settings.dead_letter_limit:]
            await self._store.write_value(DEAD_LETTER_KEY, failed)
        except StorageError as e:
            logger.error(
                "dead_letter_write_failed",
                expense_id=job.expense.id,
                error=str(e),
            )

    def _schedule_drain(self) -> None:
        if self._draining:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("journal_sync_no_event_loop", queue_length=len(self._queue))
            return
        self._drain_task = loop.create_task(self.drain())

    def _arm_retry_timer(self) -> None:
        self._cancel_retry_timer()
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(
            self._settings.retry_interval_seconds,
            self._on_retry_timer,
        )

    def _on_retry_timer(self) -> None:
        self._retry_handle = None
        self._schedule_drain()

    def _cancel_retry_timer(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    @property
    def retry_armed(self) -> bool:
        return self._retry_handle is not None
