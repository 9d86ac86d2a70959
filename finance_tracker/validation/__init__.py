"""Validation package."""

from finance_tracker.validation.validator import (
    FinanceValidator,
    ValidationError,
    ValidationIssue,
    require_positive_amount,
)

__all__ = [
    "FinanceValidator",
    "ValidationError",
    "ValidationIssue",
    "require_positive_amount",
]
