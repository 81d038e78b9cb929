"""
Journal Transport

Delivers "expense logged" entries to the external journal.

The message is plain text:
    Expense logged: $12.50 at Cafe for Food Items: latte, bagel Morning coffee
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from expense_engine.errors import SyncDeliveryFailure
from expense_engine.models.expense import Expense
from expense_engine.services.bridge import HostBridge


def format_journal_entry(expense: Expense) -> str:
    """Compose the journal text for an expense."""
    parts = [
        f"Expense logged: ${expense.amount:.2f}",
        f"at {expense.merchant}",
        f"for {expense.category.value}",
    ]

    if expense.items:
        parts.append(f"Items: {', '.join(expense.items)}")

    if expense.description:
        parts.append(expense.description)

    return " ".join(parts)


class JournalTransport(ABC):
    """Abstract delivery channel to the external journal."""

    @abstractmethod
    async def deliver(self, message: str) -> None:
        """
        Deliver one journal entry.

        Raises:
            SyncDeliveryFailure: If the journal did not accept the entry
        """
        pass


class BridgeJournalTransport(JournalTransport):
    """
    Journal delivery through the host bridge.

    Entries are posted as silent journal writes: the host records them
    but does not answer.
    """

    def __init__(self, bridge: Optional[HostBridge]):
        self._bridge = bridge

    async def deliver(self, message: str) -> None:
        if self._bridge is None:
            raise SyncDeliveryFailure("Host bridge not available")

        payload = {
            "message": message,
            "useLLM": True,
            "wantsJournalEntry": True,
            "wantsR1Response": False,
        }
        try:
            self._bridge.post_message(json.dumps(payload))
        except Exception as e:
            raise SyncDeliveryFailure(f"Host rejected journal entry: {e}") from e
