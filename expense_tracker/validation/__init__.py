"""Validation package."""

from expense_tracker.validation.validator import LedgerValidator, ValidationError

__all__ = ["LedgerValidator", "ValidationError"]
