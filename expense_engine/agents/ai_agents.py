"""
AI Agent for the Expense Engine

DESIGN DECISION: The inference service is a TRANSLATOR, not an ORACLE.
It turns a receipt or a spoken sentence into structured expense fields,
and turns real expense totals into a short insight. Every number in an
insights prompt is computed HERE from stored data; the model only
phrases it.

CRITICAL BOUNDARIES:

1. EXTRACTION / VOICE PARSE:
   - CAN: Propose amount, merchant, category, date, items
   - CANNOT: Persist anything (the caller confirms and saves)

2. INSIGHTS:
   - CAN: Phrase totals, compare periods, suggest a tip
   - CANNOT: See expenses beyond the ones passed in

Transport, correlation, timeouts and response validation all live in
RequestCorrelator; this module only builds prompts.
"""

import datetime as dt
import json
from decimal import Decimal
from typing import Iterable, Optional

from expense_engine.config import InferenceSettings, get_settings
from expense_engine.models.expense import Expense, ExpenseCategory
from expense_engine.models.inference import ExtractionResult, InsightsResult, RequestType
from expense_engine.services.inference import RequestCorrelator


# Receipt images are large; the prompt carries only a prefix as a marker
IMAGE_PREVIEW_CHARS = 100
RECENT_EXPENSES_IN_PROMPT = 10

CATEGORY_LIST = ", ".join(category.value for category in ExpenseCategory)


def build_extraction_prompt(image_base64: str, voice_context: Optional[str] = None) -> str:
    prompt = "Analyze this receipt image and extract expense details."

    if voice_context:
        prompt += f' User said: "{voice_context}"'

    prompt += f"""

Return ONLY valid JSON in this exact format:
{{
  "amount": "12.50",
  "merchant": "Store Name",
  "date": "2025-10-08",
  "category": "Groceries",
  "items": ["item1", "item2", "item3"],
  "confidence": 0.9
}}

Categories: {CATEGORY_LIST}

Image data: {image_base64[:IMAGE_PREVIEW_CHARS]}..."""

    return prompt


def build_voice_parse_prompt(text: str) -> str:
    today = dt.date.today().isoformat()
    return f"""Parse this spoken expense description: "{text}"

Extract the expense details and return ONLY valid JSON:
{{
  "amount": "XX.XX",
  "merchant": "Name",
  "category": "Category",
  "date": "{today}",
  "description": "brief description"
}}

Categories: {CATEGORY_LIST}

If amount or merchant is unclear, make best guess."""


def summarize_by_category(expenses: Iterable[Expense]) -> dict[str, Decimal]:
    """Total spent per category name, in first-seen order."""
    totals: dict[str, Decimal] = {}
    for expense in expenses:
        name = expense.category.value
        totals[name] = totals.get(name, Decimal("0.00")) + expense.amount
    return totals


def build_insights_prompt(expenses: list[Expense], time_range: str) -> str:
    total = sum((expense.amount for expense in expenses), Decimal("0.00"))
    by_category = summarize_by_category(expenses)

    if by_category:
        top_category = max(by_category, key=by_category.get)
        top_amount = by_category[top_category]
    else:
        top_category, top_amount = "None", Decimal("0.00")

    recent = "\n".join(
        f"- ${expense.amount:.2f} at {expense.merchant} ({expense.category.value})"
        for expense in expenses[:RECENT_EXPENSES_IN_PROMPT]
    )
    categories_json = json.dumps({name: f"{amount:.2f}" for name, amount in by_category.items()})

    return f"""Analyze these expenses for the past {time_range}:

Total spent: ${total:.2f}
Number of expenses: {len(expenses)}
Top category: {top_category} (${top_amount:.2f})
All categories: {categories_json}

Recent expenses:
{recent}

Provide insights and return ONLY valid JSON:
{{
  "total": "${total:.2f}",
  "topCategory": "{top_category}",
  "comparison": "comparison to previous period",
  "tip": "actionable money-saving tip"
}}"""


class ExpenseAgent:
    """
    Prompt-building front end to the inference service.

    Every method sends exactly one correlated request and returns the
    validated result. Errors from the correlator (RequestTimeout,
    TransportUnavailable, ResponseValidationError) propagate unchanged.
    """

    def __init__(
        self,
        correlator: RequestCorrelator,
        settings: Optional[InferenceSettings] = None,
    ):
        self._correlator = correlator
        self._settings = settings or get_settings().inference

    async def extract_expense_data(
        self,
        image_base64: str,
        voice_context: Optional[str] = None,
    ) -> ExtractionResult:
        """Extract expense fields from a receipt image."""
        prompt = build_extraction_prompt(image_base64, voice_context)
        return await self._correlator.send_request(
            RequestType.EXPENSE_EXTRACTION,
            prompt,
            timeout=self._settings.extraction_timeout_seconds,
        )

    async def parse_voice_expense(self, text: str) -> ExtractionResult:
        prompt = build_voice_parse_prompt(text)
        return await self._correlator.send_request(
            RequestType.VOICE_PARSE,
            prompt,
            timeout=self._settings.default_timeout_seconds,
        )

    async def generate_insights(
        self,
        expenses: list[Expense],
        time_range: str = "week",
    ) -> InsightsResult:
        """
        Ask for a short insight over the given expenses.

        The totals in the prompt are computed locally; the response is
        validated with defaults for anything missing.
        """
        prompt = build_insights_prompt(expenses, time_range)
        return await self._correlator.send_request(
            RequestType.INSIGHTS,
            prompt,
            timeout=self._settings.default_timeout_seconds,
        )
