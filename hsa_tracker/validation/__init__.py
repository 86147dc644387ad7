"""Expense validation package."""

from hsa_tracker.validation.validator import ExpenseValidator

__all__ = ["ExpenseValidator"]
