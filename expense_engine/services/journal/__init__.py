"""Journal sync package."""

from expense_engine.services.journal.transport import (
    BridgeJournalTransport,
    JournalTransport,
    format_journal_entry,
)
from expense_engine.services.journal.sync_queue import DEAD_LETTER_KEY, SyncQueue

__all__ = [
    "BridgeJournalTransport",
    "DEAD_LETTER_KEY",
    "JournalTransport",
    "SyncQueue",
    "format_journal_entry",
]
