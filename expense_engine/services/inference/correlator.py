"""
Request/Response Correlator

DESIGN DECISION: The inference service is reached through ONE
asynchronous channel. Sends and responses are decoupled: we post a
request and, some time later, the host hands us a message that should
carry our correlation id back in its metadata.

The correlator:
1. Registers every request with a unique (among pending) correlation id
   and a deadline timer
2. Sends queued requests one at a time, pausing a short grace interval
   between sends - it never waits for a response before the next send
3. Matches inbound messages to pending requests and resolves/rejects
   the caller's future with the validated payload
4. Rejects requests whose deadline passes with RequestTimeout; a late
   response then finds no match and is dropped

DEGRADED MODE: A response without a correlation id is matched to the
OLDEST pending request (settings.allow_uncorrelated_fallback). With more
than one request outstanding this can misattribute a response. Callers
that need strict matching turn the fallback off; uncorrelated responses
are then dropped.
"""

import asyncio
import json
import time
from collections import OrderedDict, deque
from datetime import datetime
from typing import Any, Optional, Union
from uuid import uuid4

import structlog

from expense_engine.config import InferenceSettings, get_settings
from expense_engine.errors import (
    InferenceError,
    RequestCleared,
    RequestTimeout,
    ResponseValidationError,
    TransportUnavailable,
)
from expense_engine.models.expense import utc_now
from expense_engine.models.inference import RequestType
from expense_engine.services.inference.channel import InferenceChannel
from expense_engine.services.inference.responses import parse_response


logger = structlog.get_logger(__name__)


class PendingRequest:
    """An outstanding request awaiting its response."""

    def __init__(
        self,
        correlation_id: str,
        request_type: Union[RequestType, str],
        future: asyncio.Future,
        timer: asyncio.TimerHandle,
    ):
        self.correlation_id = correlation_id
        self.request_type = request_type
        self.future = future
        self.timer = timer
        self.created_at: datetime = utc_now()

    def settle(self, result: Any = None, error: Optional[Exception] = None) -> None:
        self.timer.cancel()
        if self.future.done():
            return
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(result)


class RequestCorrelator:
    """
    Manages outstanding requests over a single inference channel.

    Usage:
        result = await correlator.send_request(RequestType.VOICE_PARSE, prompt)
        ...
        # host inbound handler:
        correlator.handle_response(message)
    """

    def __init__(
        self,
        channel: Optional[InferenceChannel],
        settings: Optional[InferenceSettings] = None,
    ):
        self._channel = channel
        self._settings = settings or get_settings().inference
        # Insertion order = creation order; the fallback takes the first entry
        self._pending: OrderedDict[str, PendingRequest] = OrderedDict()
        self._send_queue: deque[tuple[str, Union[RequestType, str], str]] = deque()
        self._pump_task: Optional[asyncio.Task] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def send_request(
        self,
        request_type: Union[RequestType, str],
        message: str,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Queue a request and wait for its validated response.

        Raises:
            TransportUnavailable: If there is no inference channel
            RequestTimeout: If no response arrives before the deadline
            ResponseValidationError: If the response payload is malformed
            RequestCleared: If pending requests are cleared first
        """
        request_type = self._coerce_type(request_type)
        if self._channel is None:
            raise TransportUnavailable("Inference channel not available")

        loop = asyncio.get_running_loop()
        correlation_id = self._new_correlation_id()
        deadline = timeout if timeout is not None else self._settings.default_timeout_seconds

        future = loop.create_future()
        timer = loop.call_later(deadline, self._expire, correlation_id)
        self._pending[correlation_id] = PendingRequest(
            correlation_id, request_type, future, timer
        )
        self._send_queue.append((correlation_id, request_type, message))
        self._ensure_pump()

        logger.debug(
            "inference_request_queued",
            correlation_id=correlation_id,
            request_type=str(getattr(request_type, "value", request_type)),
            timeout_seconds=deadline,
        )

        try:
            return await future
        except asyncio.CancelledError:
            self._discard(correlation_id)
            raise

    def handle_response(self, data: Union[dict[str, Any], str]) -> bool:
        """
        Inbound message handler for the inference channel.

        Returns:
            True if the message settled a pending request, False if it
            was dropped (no matching request)
        """
        message = self._as_message(data)
        metadata = message.get("metadata")
        correlation_id = metadata.get("correlationId") if isinstance(metadata, dict) else None

        if not correlation_id and self._pending and self._settings.allow_uncorrelated_fallback:
            correlation_id = next(iter(self._pending))
            logger.warning(
                "response_without_correlation_id",
                matched_correlation_id=correlation_id,
                pending=len(self._pending),
            )

        if not correlation_id or correlation_id not in self._pending:
            logger.warning("unmatched_inference_response", correlation_id=correlation_id)
            return False

        pending = self._pending.pop(correlation_id)
        try:
            result = parse_response(
                pending.request_type,
                message,
                self._settings.default_confidence,
            )
        except ResponseValidationError as e:
            logger.warning(
                "inference_response_invalid",
                correlation_id=correlation_id,
                error=str(e),
            )
            pending.settle(error=e)
        else:
            pending.settle(result=result)
        return True

    def pending_count(self) -> int:
        return len(self._pending)

    def pending_ids(self) -> list[str]:
        """Pending correlation ids, oldest first."""
        return list(self._pending)

    def clear_pending(self) -> None:
        """Reject every pending request and empty the send queue."""
        for pending in list(self._pending.values()):
            pending.settle(error=RequestCleared("Request cleared"))
        self._pending.clear()
        self._send_queue.clear()
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
        self._pump_task = None

    async def close(self) -> None:
        pump = self._pump_task
        self.clear_pending()
        if pump is not None:
            try:
                await pump
            except asyncio.CancelledError:
                pass

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _coerce_type(request_type: Union[RequestType, str]) -> Union[RequestType, str]:
        try:
            return RequestType(request_type)
        except ValueError:
            return request_type

    @staticmethod
    def _as_message(data: Union[dict[str, Any], str]) -> dict[str, Any]:
        if isinstance(data, dict):
            return data
        try:
            parsed = json.loads(data)
        except (TypeError, ValueError):
            return {"message": data}
        return parsed if isinstance(parsed, dict) else {"data": parsed}

    def _new_correlation_id(self) -> str:
        correlation_id = uuid4().hex
        while correlation_id in self._pending:
            correlation_id = uuid4().hex
        return correlation_id

    def _ensure_pump(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    async def _pump(self) -> None:
        """Send queued requests one at a time with a grace pause between them."""
        while self._send_queue:
            correlation_id, request_type, message = self._send_queue.popleft()
            if correlation_id not in self._pending:
                continue
            await self._send(correlation_id, request_type, message)
            await asyncio.sleep(self._settings.send_grace_seconds)

    async def _send(
        self,
        correlation_id: str,
        request_type: Union[RequestType, str],
        message: str,
    ) -> None:
        payload = {
            "message": message,
            "useLLM": True,
            "metadata": {
                "correlationId": correlation_id,
                "type": str(getattr(request_type, "value", request_type)),
                "timestamp": int(time.time() * 1000),
            },
        }
        try:
            await self._channel.send(payload)
        except Exception as e:
            error = e if isinstance(e, InferenceError) else TransportUnavailable(str(e))
            logger.error(
                "inference_send_failed",
                correlation_id=correlation_id,
                error=str(e),
            )
            pending = self._pending.pop(correlation_id, None)
            if pending is not None:
                pending.settle(error=error)

    def _expire(self, correlation_id: str) -> None:
        pending = self._pending.pop(correlation_id, None)
        if pending is None:
            return
        logger.warning(
            "inference_request_timeout",
            correlation_id=correlation_id,
            request_type=str(getattr(pending.request_type, "value", pending.request_type)),
        )
        pending.settle(
            error=RequestTimeout(
                str(getattr(pending.request_type, "value", pending.request_type)),
                correlation_id,
            )
        )

    def _discard(self, correlation_id: str) -> None:
        pending = self._pending.pop(correlation_id, None)
        if pending is not None:
            pending.timer.cancel()
