"""
Input Validation for Budgets and Transactions

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SHAPE VALIDATION:
- Amounts positive / non-zero
- Recurring budgets carry a frequency
- Recurrence end not before the budget starts
- Runs without storage

STAGE 2 - REFERENCE VALIDATION:
- Category exists and is a main category
- Subcategory exists and belongs to the given category
- Amount sign agrees with the category type (warning only)
- Needs the category repository

Errors raise ValidationError synchronously, before anything is written.
Warnings are returned for the caller to log.

IMPORTANT: Validation NEVER silently fixes issues.
"""

from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, Field

from finance_tracker.models.finance import (
    Budget,
    Category,
    CategoryType,
    Transaction,
)
from finance_tracker.services.storage.repository import CategoryRepository


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'inconsistent')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning)$",
        description="Issue severity"
    )


class ValidationError(ValueError):
    """Malformed input to a public operation."""

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = issues or []

    @classmethod
    def from_issues(cls, issues: list[ValidationIssue]) -> "ValidationError":
        errors = [issue for issue in issues if issue.severity == "error"]
        message = "; ".join(issue.message for issue in errors)
        return cls(message, issues)


def require_positive_amount(amount: Decimal, field: str = "amount") -> Decimal:
    """Raise ValidationError unless amount is a finite number > 0."""
    try:
        value = Decimal(amount) if amount is not None else None
    except (InvalidOperation, TypeError, ValueError):
        value = None
    if value is None or not value.is_finite() or value <= 0:
        raise ValidationError(
            f"{field} must be greater than zero, got {amount}",
            [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field} must be greater than zero",
                severity="error",
            )],
        )
    return value


def _raise_on_errors(issues: list[ValidationIssue]) -> list[ValidationIssue]:
    if any(issue.severity == "error" for issue in issues):
        raise ValidationError.from_issues(issues)
    return [issue for issue in issues if issue.severity == "warning"]


class FinanceValidator:
    """
    Validates budgets and transactions before they are stored.

    Stage 1 runs without storage, stage 2 resolves category references.
    """

    def __init__(self, categories: CategoryRepository):
        self._categories = categories

    # =========================================================================
    # STAGE 1 - SHAPE
    # =========================================================================

    def _check_budget_shape(self, budget: Budget) -> list[ValidationIssue]:
        issues = []

        if budget.limit <= 0:
            issues.append(ValidationIssue(
                field="limit",
                issue_type="invalid_value",
                message="Budget limit must be greater than zero",
                severity="error",
            ))

        if budget.recurring and budget.recurrence_frequency is None:
            issues.append(ValidationIssue(
                field="recurrence_frequency",
                issue_type="missing",
                message="Recurring budgets need a recurrence frequency",
                severity="error",
            ))

        if (
            budget.recurrence_end_date is not None
            and budget.recurrence_end_date < budget.start_date
        ):
            issues.append(ValidationIssue(
                field="recurrence_end_date",
                issue_type="inconsistent",
                message="Recurrence end date is before the budget starts",
                severity="error",
            ))

        if budget.spent > budget.limit:
            issues.append(ValidationIssue(
                field="spent",
                issue_type="suspicious_value",
                message="Budget starts already over its limit",
                severity="warning",
            ))

        return issues

    def _check_transaction_shape(self, transaction: Transaction) -> list[ValidationIssue]:
        issues = []

        if transaction.amount == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Transaction amount cannot be zero",
                severity="error",
            ))

        if transaction.date > date.today() + timedelta(days=366):
            issues.append(ValidationIssue(
                field="date",
                issue_type="suspicious_value",
                message=f"Transaction date ({transaction.date}) is more than a year ahead",
                severity="warning",
            ))

        return issues

    # =========================================================================
    # STAGE 2 - REFERENCES
    # =========================================================================

    async def _check_category_refs(
        self,
        category_id: str,
        subcategory_id: Optional[str],
    ) -> tuple[list[ValidationIssue], Optional[Category]]:
        issues = []

        category = await self._categories.get(category_id)
        if category is None:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="not_found",
                message=f"Category {category_id} does not exist",
                severity="error",
            ))
            return issues, None

        if category.is_subcategory:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="inconsistent",
                message=f"{category.name} is a subcategory; use its parent as category",
                severity="error",
            ))

        if subcategory_id is not None:
            subcategory = await self._categories.get(subcategory_id)
            if subcategory is None:
                issues.append(ValidationIssue(
                    field="subcategory_id",
                    issue_type="not_found",
                    message=f"Subcategory {subcategory_id} does not exist",
                    severity="error",
                ))
            elif subcategory.parent_id != category_id:
                issues.append(ValidationIssue(
                    field="subcategory_id",
                    issue_type="inconsistent",
                    message=f"{subcategory.name} does not belong to {category.name}",
                    severity="error",
                ))

        return issues, category

    # =========================================================================
    # PUBLIC
    # =========================================================================

    async def validate_budget(self, budget: Budget) -> list[ValidationIssue]:
        """
        Validate a budget about to be created or edited.

        Returns:
            Warnings (never errors)

        Raises:
            ValidationError: If any error-level issue was found
        """
        issues = self._check_budget_shape(budget)
        ref_issues, _ = await self._check_category_refs(
            budget.category_id, budget.subcategory_id
        )
        issues.extend(ref_issues)
        return _raise_on_errors(issues)

    async def validate_transaction(self, transaction: Transaction) -> list[ValidationIssue]:
        """
        Validate a transaction about to be recorded.

        Returns:
            Warnings (never errors)

        Raises:
            ValidationError: If any error-level issue was found
        """
        issues = self._check_transaction_shape(transaction)
        ref_issues, category = await self._check_category_refs(
            transaction.category_id, transaction.subcategory_id
        )
        issues.extend(ref_issues)

        # Sign convention: negative = expense
        if category is not None and transaction.amount != 0:
            expected = CategoryType.EXPENSE if transaction.is_expense else CategoryType.INCOME
            if category.type != expected:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="inconsistent",
                    message=(
                        f"A {'negative' if transaction.is_expense else 'positive'} amount "
                        f"in {category.type.value} category {category.name}"
                    ),
                    severity="warning",
                ))

        return _raise_on_errors(issues)
