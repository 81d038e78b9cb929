"""
Host Bridge

The wearable host exposes a single outbound message primitive shared by
the journal and the inference channel. Responses come back through the
host's inbound message handler (see RequestCorrelator.handle_response).
"""

from abc import ABC, abstractmethod
from typing import Callable


class HostBridge(ABC):
    """Outbound message primitive provided by the host."""

    @abstractmethod
    def post_message(self, message: str) -> None:
        """
        Hand a serialized payload to the host.

        Raises:
            Exception: Whatever the host raises when it cannot accept it
        """
        pass


class CallbackHostBridge(HostBridge):
    """Bridge that forwards every message to a callable."""

    def __init__(self, callback: Callable[[str], None]):
        self._callback = callback

    def post_message(self, message: str) -> None:
        self._callback(message)
