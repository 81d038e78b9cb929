"""
Response Validation

Turns an inbound channel message into the value a request's caller
receives. Validation depends on the request type:

- expense_extraction / voice_parse: needs a usable amount OR a raw
  fallback. Everything else gets a default.
- insights: never fails; missing fields get defaults.
- anything else: the parsed payload, unvalidated.
"""

import datetime as dt
import json
import math
import re
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from expense_engine.errors import ResponseValidationError
from expense_engine.models.inference import ExtractionResult, InsightsResult, RequestType


_NON_NUMERIC = re.compile(r"[^0-9.]")


def _parse_json_or_raw(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return {"raw": text}


def extract_payload(message: dict[str, Any]) -> dict[str, Any]:
    """
    Pull the structured document out of a channel message.

    Looks at "data" first (a document or a JSON string), then "message"
    (a JSON string). Text that is not JSON comes back as {"raw": text}.

    Raises:
        ResponseValidationError: If the message carries neither
    """
    body = message.get("data")
    if body:
        payload = _parse_json_or_raw(body) if isinstance(body, str) else body
    elif message.get("message"):
        payload = _parse_json_or_raw(str(message["message"]))
    else:
        raise ResponseValidationError("No data in inference response")

    if not isinstance(payload, dict):
        return {"raw": payload}
    return payload


def _coerce_amount(value: Any) -> Union[float, None]:
    """Non-negative float from a number or numeric-looking string; None if unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        try:
            amount = float(cleaned)
        except ValueError:
            return None
    if not math.isfinite(amount) or amount < 0:
        return None
    return amount


def _coerce_confidence(value: Any, default: float) -> float:
    """Confidence in [0, 1]. Percentages are scaled down; anything else unusable gets the default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        confidence = float(str(value).strip().rstrip("%"))
    except ValueError:
        return default
    if not math.isfinite(confidence) or confidence < 0:
        return default
    if confidence > 1:
        confidence = confidence / 100
    return confidence if confidence <= 1 else default


def validate_expense_data(payload: dict[str, Any], default_confidence: float) -> ExtractionResult:
    """
    Normalize an extraction or voice-parse payload.

    Raises:
        ResponseValidationError: If there is no usable amount and no raw text
    """
    raw = payload.get("raw")
    amount = _coerce_amount(payload.get("amount"))
    if amount is None:
        if not raw:
            raise ResponseValidationError("Missing amount in expense data")
        amount = 0.0

    items = payload.get("items") or []
    if not isinstance(items, list):
        items = [items]

    confidence = _coerce_confidence(payload.get("confidence"), default_confidence)

    try:
        return ExtractionResult(
            amount=amount,
            merchant=str(payload.get("merchant") or payload.get("vendor") or "Unknown"),
            date=str(payload.get("date") or dt.date.today().isoformat()),
            category=str(payload.get("category") or "Uncategorized"),
            description=str(payload.get("description") or ""),
            items=[str(item) for item in items],
            confidence=confidence,
            raw=raw,
        )
    except PydanticValidationError as e:
        raise ResponseValidationError(f"Malformed expense data: {e.error_count()} errors") from e


def validate_insights_data(payload: dict[str, Any]) -> InsightsResult:
    """Insights always validate; missing fields get defaults."""
    defaults = InsightsResult()
    return InsightsResult(
        total=str(payload.get("total") or defaults.total),
        top_category=str(payload.get("topCategory") or defaults.top_category),
        comparison=str(payload.get("comparison") or defaults.comparison),
        tip=str(payload.get("tip") or defaults.tip),
        raw=payload,
    )


def parse_response(
    request_type: Union[RequestType, str],
    message: dict[str, Any],
    default_confidence: float = 0.8,
) -> Any:
    """Validate a channel message for the request type that awaits it."""
    payload = extract_payload(message)

    try:
        request_type = RequestType(request_type)
    except ValueError:
        return payload

    if request_type.is_expense:
        return validate_expense_data(payload, default_confidence)
    return validate_insights_data(payload)
