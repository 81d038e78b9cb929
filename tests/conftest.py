"""
Shared fixtures and fakes for Expense Engine tests.

No real host bridge and no files on disk (unless a test asks for
tmp_path): every component runs against in-memory fakes.
"""

import asyncio
from typing import Any, Optional

import pytest

from expense_engine.config import InferenceSettings, StoreSettings, SyncSettings
from expense_engine.errors import StorageUnavailable, SyncDeliveryFailure, TransportUnavailable
from expense_engine.events import EventBus
from expense_engine.models.events import EventType, Notification
from expense_engine.services.inference import InferenceChannel
from expense_engine.services.journal import JournalTransport
from expense_engine.services.storage import ExpenseStore, InMemoryBackend


class FailingBackend(InMemoryBackend):
    """In-memory backend whose writes fail once `fail_writes` is set."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageUnavailable(f"Failed to write {key}: disk full")
        await super().set(key, value)


class RecordingTransport(JournalTransport):
    """Journal transport that records messages and fails the first N deliveries."""

    def __init__(self, fail_times: int = 0, delay: float = 0.0):
        self.fail_times = fail_times
        self.delay = delay
        self.attempts = 0
        self.delivered: list[str] = []

    async def deliver(self, message: str) -> None:
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.attempts <= self.fail_times:
            raise SyncDeliveryFailure("journal offline")
        self.delivered.append(message)


class RecordingChannel(InferenceChannel):
    """Inference channel that records payloads instead of sending them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict[str, Any]] = []

    async def send(self, payload: dict[str, Any]) -> None:
        if self.fail:
            raise TransportUnavailable("Host bridge not available")
        self.sent.append(payload)

    def correlation_id(self, index: int = -1) -> str:
        return self.sent[index]["metadata"]["correlationId"]


class EventRecorder:
    """Collects every notification of the given types."""

    def __init__(self, bus: EventBus, *event_types: EventType):
        self.notifications: list[Notification] = []
        for event_type in event_types or tuple(EventType):
            bus.on(event_type, self.notifications.append)

    def of(self, event_type: EventType) -> list[Notification]:
        return [n for n in self.notifications if n.event_type == event_type]


async def wait_for_sent(channel: RecordingChannel, count: int, timeout: float = 1.0) -> None:
    """Wait until the correlator's send pump has sent `count` payloads."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while len(channel.sent) < count:
        if loop.time() > deadline:
            raise AssertionError(f"only {len(channel.sent)} of {count} payloads sent")
        await asyncio.sleep(0.001)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def store_settings() -> StoreSettings:
    return StoreSettings(cache_size=100, search_batch_size=50, default_page_size=50)


@pytest.fixture
def sync_settings() -> SyncSettings:
    return SyncSettings(
        enabled=True,
        max_retries=5,
        attempt_timeout_seconds=0.5,
        retry_interval_seconds=60,
    )


@pytest.fixture
def inference_settings() -> InferenceSettings:
    return InferenceSettings(
        default_timeout_seconds=1.0,
        extraction_timeout_seconds=1.0,
        send_grace_seconds=0.0,
    )


@pytest.fixture
def backend() -> FailingBackend:
    return FailingBackend()


@pytest.fixture
def store(backend, bus, store_settings) -> ExpenseStore:
    return ExpenseStore(backend, bus=bus, settings=store_settings)


def expense_data(amount: Any = "12.50", merchant: str = "Cafe", category: str = "Food",
                 date: Optional[str] = "2025-10-08", **extra) -> dict[str, Any]:
    data = {"amount": amount, "merchant": merchant, "category": category, "date": date}
    data.update(extra)
    return data
