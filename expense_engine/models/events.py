"""
Notification Models for Expense Engine

Every state change the presentation layer may care about is published
as a Notification on the event bus:
1. Store changes (expense created/updated/deleted, budget updated)
2. Journal sync progress (started, synced, failed, completed)

DESIGN DECISION: Sync failures are never raised to the caller that queued
the expense. These notifications are the only place they become visible.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from expense_engine.models.expense import utc_now


class EventType(str, Enum):
    """Types of notifications emitted to the presentation layer."""
    # Store
    EXPENSE_CREATED = "expense:created"
    EXPENSE_UPDATED = "expense:updated"
    EXPENSE_DELETED = "expense:deleted"
    BUDGET_UPDATED = "budget:updated"

    # Journal sync
    SYNC_STARTED = "journal:sync_started"
    SYNCED = "journal:synced"
    SYNC_FAILED = "journal:sync_failed"
    SYNC_COMPLETED = "journal:sync_completed"


class EventSeverity(str, Enum):
    """Log level used when a notification is emitted."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"


EVENT_SEVERITY = {
    EventType.SYNC_STARTED: EventSeverity.DEBUG,
    EventType.SYNC_COMPLETED: EventSeverity.DEBUG,
    EventType.SYNC_FAILED: EventSeverity.WARNING,
}


class Notification(BaseModel):
    """
    A single notification.

    `data` carries the relevant record or job snapshot (or None for
    events that have no subject, like sync completion).
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    event_type: EventType
    timestamp: datetime = Field(default_factory=utc_now)
    data: Any = None

    @property
    def severity(self) -> EventSeverity:
        return EVENT_SEVERITY.get(self.event_type, EventSeverity.INFO)

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        subject = self.data
        if isinstance(subject, BaseModel):
            subject = subject.model_dump(mode="json")
        return {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": subject,
        }
