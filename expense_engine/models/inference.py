"""
Inference Models

Shapes of the requests sent to, and the validated responses received
from, the external inference channel.

CRITICAL: These are PROPOSED values from a language model. An extraction
result is turned into an Expense only after it goes through the same
normalization as any user-entered expense.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RequestType(str, Enum):
    """Kinds of request the correlator knows how to validate."""
    EXPENSE_EXTRACTION = "expense_extraction"
    VOICE_PARSE = "voice_parse"
    INSIGHTS = "insights"

    @property
    def is_expense(self) -> bool:
        return self in (RequestType.EXPENSE_EXTRACTION, RequestType.VOICE_PARSE)


class ExtractionResult(BaseModel):
    """
    Normalized result of a receipt extraction or voice parse.

    `raw` holds the unparsed response text when the model did not
    return structured data.
    """

    amount: float = Field(ge=0.0)
    merchant: str = "Unknown"
    date: str
    category: str = "Uncategorized"
    description: str = ""
    items: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    raw: Optional[Any] = None

    def to_expense_data(self) -> dict:
        """Fields in the shape accepted by the expense service."""
        return {
            "amount": self.amount,
            "merchant": self.merchant,
            "date": self.date,
            "category": self.category,
            "description": self.description,
            "items": list(self.items),
        }


class InsightsResult(BaseModel):
    """Spending insights. Every field has a default so this never fails."""
    model_config = ConfigDict(populate_by_name=True)

    total: str = "$0"
    top_category: str = Field(default="None", alias="topCategory")
    comparison: str = "N/A"
    tip: str = "Keep tracking your expenses!"
    raw: dict[str, Any] = Field(default_factory=dict)
