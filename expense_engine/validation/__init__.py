"""Validation package."""

from expense_engine.validation.validator import ExpenseValidator

__all__ = ["ExpenseValidator"]
