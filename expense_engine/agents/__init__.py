"""AI Agents package."""

from expense_engine.agents.ai_agents import (
    ExpenseAgent,
    build_extraction_prompt,
    build_insights_prompt,
    build_voice_parse_prompt,
    summarize_by_category,
)

__all__ = [
    "ExpenseAgent",
    "build_extraction_prompt",
    "build_insights_prompt",
    "build_voice_parse_prompt",
    "summarize_by_category",
]
