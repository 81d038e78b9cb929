"""
Expense Normalization

DESIGN DECISION: Every expense goes through the same normalization before
it reaches the store, whether it was typed, spoken, or extracted from a
receipt:

- AMOUNT: parsed from numbers or numeric-looking strings ("$12.5"),
  quantized to 2 decimals. Anything that is not a non-negative number
  is a hard ValidationError - we never store a bad amount.
- CATEGORY: matched case-insensitively against the fixed category set.
  Unknown categories are coerced to Other (logged, not rejected).
- DATE: ISO calendar date. Missing means today.
- MERCHANT / DESCRIPTION / ITEMS: defaulted when missing.
"""

import datetime as dt
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from expense_engine.errors import ValidationError
from expense_engine.models.expense import Expense, ExpenseCategory


logger = structlog.get_logger(__name__)

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


class ExpenseValidator:
    """
    Normalizes raw expense data into an Expense.

    Stateless; one instance can be shared by the store and the service.
    """

    def parse_amount(self, value: Any) -> Decimal:
        """
        Parse an amount into a non-negative Decimal.

        Raises:
            ValidationError: If the value is missing, not numeric, or negative
        """
        if value is None or isinstance(value, bool):
            raise ValidationError("amount", "Invalid amount: missing")

        if isinstance(value, float) and not math.isfinite(value):
            raise ValidationError("amount", f"Invalid amount: {value}")

        if isinstance(value, str):
            cleaned = _NON_NUMERIC.sub("", value)
            if not cleaned:
                raise ValidationError("amount", f"Invalid amount: {value!r}")
            value = cleaned

        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError("amount", f"Invalid amount: {value!r}")

        if not amount.is_finite() or amount < 0:
            raise ValidationError("amount", f"Invalid amount: {value!r}")

        try:
            return amount.quantize(Decimal("0.01"))
        except InvalidOperation:
            raise ValidationError("amount", f"Amount too large: {value!r}")

    def normalize_category(self, value: Any) -> ExpenseCategory:
        """Match to the fixed category set; unknown values become Other."""
        if value is None or value == "":
            return ExpenseCategory.OTHER

        category = ExpenseCategory.match(value)
        if category is None:
            logger.warning("unknown_category", category=str(value), using="Other")
            return ExpenseCategory.OTHER
        return category

    def normalize_date(self, value: Any) -> dt.date:
        """
        Normalize to a calendar date.

        Raises:
            ValidationError: If a string value is not an ISO date or datetime
        """
        if value is None or value == "":
            return dt.date.today()
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, dt.date):
            return value
        text = str(value).strip()
        try:
            return dt.date.fromisoformat(text[:10])
        except ValueError:
            raise ValidationError("date", f"Invalid date: {value!r}")

    def normalize(
        self,
        data: Union[Expense, dict],
        existing: Optional[Expense] = None,
    ) -> Expense:
        """
        Build a normalized Expense from raw data.

        Args:
            data: Raw fields (dict) or an Expense
            existing: The stored version when this is an update; its id and
                      timestamp always win over anything in `data`

        Raises:
            ValidationError: If the amount or date cannot be normalized
        """
        if isinstance(data, Expense):
            fields = data.model_dump()
        else:
            fields = dict(data)

        if existing is not None:
            merged = existing.model_dump()
            merged.update({k: v for k, v in fields.items() if v is not None})
            merged["id"] = existing.id
            merged["timestamp"] = existing.timestamp
            fields = merged

        items = fields.get("items") or []
        if isinstance(items, str):
            items = [items]

        normalized = {
            "amount": self.parse_amount(fields.get("amount")),
            "merchant": str(fields.get("merchant") or "Unknown"),
            "category": self.normalize_category(fields.get("category")),
            "date": self.normalize_date(fields.get("date")),
            "description": str(fields.get("description") or ""),
            "items": [str(item) for item in items],
        }
        if fields.get("id"):
            normalized["id"] = str(fields["id"])
        if fields.get("timestamp"):
            normalized["timestamp"] = fields["timestamp"]

        try:
            return Expense(**normalized)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else "expense"
            raise ValidationError(field, f"Invalid {field}: {first['msg']}") from e
