"""
Value Codec

Turns records, index buckets and auxiliary values into the opaque strings
the key/value backend stores, and back.

Format: JSON, wrapped in URL-safe base64 so the value is plain ASCII text
whatever the merchant names or descriptions contain. The format is private
to this module.
"""

import base64
import binascii
import json
from typing import Any

from pydantic import BaseModel, ValidationError as PydanticValidationError

from expense_engine.errors import DecodeError
from expense_engine.models.expense import Expense


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    return value


def encode(value: Any) -> str:
    """Serialize a value (models, lists, dicts, scalars) to an opaque string."""
    serialized = json.dumps(_to_jsonable(value), default=str, separators=(",", ":"))
    return base64.urlsafe_b64encode(serialized.encode("utf-8")).decode("ascii")


def decode(encoded: str) -> Any:
    """
    Deserialize a string produced by encode().

    Raises:
        DecodeError: If the value is not valid base64 or valid JSON
    """
    try:
        raw = base64.urlsafe_b64decode(encoded.encode("ascii"))
        return json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError, AttributeError) as e:
        raise DecodeError(f"Corrupt stored value: {e}") from e


def decode_expense(encoded: str) -> Expense:
    """
    Deserialize and validate an expense record.

    Raises:
        DecodeError: If the value is corrupt or does not match the schema
    """
    data = decode(encoded)
    try:
        return Expense.model_validate(data)
    except PydanticValidationError as e:
        raise DecodeError(f"Stored value is not an expense: {e.error_count()} errors") from e
