"""Services package."""

from expense_engine.services.bridge import CallbackHostBridge, HostBridge
from expense_engine.services.storage import (
    ExpenseStore,
    FileBackend,
    InMemoryBackend,
    KeyValueBackend,
)
from expense_engine.services.journal import (
    BridgeJournalTransport,
    JournalTransport,
    SyncQueue,
    format_journal_entry,
)
from expense_engine.services.inference import (
    BridgeInferenceChannel,
    InferenceChannel,
    RequestCorrelator,
)

__all__ = [
    # Host bridge
    "CallbackHostBridge",
    "HostBridge",
    # Storage
    "ExpenseStore",
    "FileBackend",
    "InMemoryBackend",
    "KeyValueBackend",
    # Journal sync
    "BridgeJournalTransport",
    "JournalTransport",
    "SyncQueue",
    "format_journal_entry",
    # Inference
    "BridgeInferenceChannel",
    "InferenceChannel",
    "RequestCorrelator",
]
