"""
Inference Channel

Outbound half of the single bidirectional channel to the inference
service. The inbound half is RequestCorrelator.handle_response, which the
host calls for every message it receives.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from expense_engine.errors import TransportUnavailable
from expense_engine.services.bridge import HostBridge


class InferenceChannel(ABC):
    """Abstract send primitive for inference requests."""

    @abstractmethod
    async def send(self, payload: dict[str, Any]) -> None:
        """
        Send one request payload. The payload embeds the correlation id
        and request type under "metadata".

        Raises:
            TransportUnavailable: If the channel cannot accept the payload
        """
        pass


class BridgeInferenceChannel(InferenceChannel):
    """Inference requests posted through the host bridge."""

    def __init__(self, bridge: Optional[HostBridge]):
        self._bridge = bridge

    async def send(self, payload: dict[str, Any]) -> None:
        if self._bridge is None:
            raise TransportUnavailable("Host bridge not available")
        try:
            self._bridge.post_message(json.dumps(payload))
        except Exception as e:
            raise TransportUnavailable(f"Host rejected inference request: {e}") from e
