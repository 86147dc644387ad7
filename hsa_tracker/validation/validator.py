"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Basic ranges (positive amount)
- Field pairing (reimbursed amount on reimbursed expenses)
- This catches incomplete or malformed form input

STAGE 2 - SEMANTIC VALIDATION:
- Future service date detection
- Unusually large amount detection
- Reimbursed more than was paid
- Tax year far from the service year
- Missing receipt
- Duplicate detection
- This catches logically impossible or suspicious data

WHY TWO STAGES:
1. Separation of concerns (structural vs logical)
2. Better error messages (know exactly what kind of issue)
3. Can skip stage 2 if stage 1 fails
4. Stage 2 needs access to storage for duplicate checks

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review. The engines downstream never see an
expense that failed stage 1.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from hsa_tracker.config import get_settings
from hsa_tracker.config.settings import AppSettings
from hsa_tracker.models.expense import (
    ExpenseInput,
    ValidationIssue,
    ValidationResult,
)
from hsa_tracker.services.storage import ExpenseStorageInterface


logger = structlog.get_logger(__name__)


class ExpenseValidator:
    """
    Validates expense form input through a two-stage pipeline.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Semantic validation (may need storage for duplicate checks)
    """

    def __init__(
        self,
        expense_storage: Optional[ExpenseStorageInterface] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        """
        Initialize validator.

        Args:
            expense_storage: Storage interface for duplicate checking.
                            If None, duplicate checking is skipped.
            app_settings: Thresholds; loaded from the environment when omitted.
        """
        self._storage = expense_storage
        self._settings = app_settings or get_settings().app

    def _validate_schema(
        self,
        payload: ExpenseInput,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not payload.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
                suggested_fix="Describe what the expense was for, e.g. 'Annual eye exam'",
            ))

        if payload.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
                suggested_fix="Enter the amount you paid out of pocket",
            ))
        elif payload.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Check the amount on your receipt",
            ))

        if payload.date_of_service is None:
            issues.append(ValidationIssue(
                field="date_of_service",
                issue_type="missing",
                message="Date of service is required",
                severity="error",
                suggested_fix="Use the date care was received, not the payment date",
            ))

        if (
            payload.date_of_service
            and payload.date_of_service_end
            and payload.date_of_service_end < payload.date_of_service
        ):
            issues.append(ValidationIssue(
                field="date_of_service_end",
                issue_type="inconsistent",
                message="Service end date is before the service date",
                severity="error",
                suggested_fix="Please verify both dates",
            ))

        if payload.reimbursed:
            if payload.reimbursed_amount is None:
                issues.append(ValidationIssue(
                    field="reimbursed_amount",
                    issue_type="missing",
                    message="Reimbursed amount is required for a reimbursed expense",
                    severity="error",
                    suggested_fix="Enter how much the HSA paid back",
                ))
            elif payload.reimbursed_amount < 0:
                issues.append(ValidationIssue(
                    field="reimbursed_amount",
                    issue_type="invalid_value",
                    message="Reimbursed amount cannot be negative",
                    severity="error",
                ))

        # Schema is valid if no errors (warnings are okay)
        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        payload: ExpenseInput,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Only runs after stage 1 passed, so amount and date_of_service are set.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        # Future date check (with tolerance)
        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if payload.date_of_service > max_future_date:
            issues.append(ValidationIssue(
                field="date_of_service",
                issue_type="future_date",
                message=f"Date of service ({payload.date_of_service}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        # Absurd amount check
        max_amount = Decimal(str(self._settings.max_expense_amount))
        if payload.amount > max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount (${payload.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        # Can't be paid back more than was spent
        if (
            payload.reimbursed
            and payload.reimbursed_amount is not None
            and payload.reimbursed_amount > payload.amount
        ):
            issues.append(ValidationIssue(
                field="reimbursed_amount",
                issue_type="inconsistent",
                message=(
                    f"Reimbursed amount (${payload.reimbursed_amount:,.2f}) is more than "
                    f"the expense (${payload.amount:,.2f})"
                ),
                severity="error",
                suggested_fix="Reimbursements can't exceed what you paid",
            ))

        if payload.reimbursed_date and payload.reimbursed_date < payload.date_of_service:
            issues.append(ValidationIssue(
                field="reimbursed_date",
                issue_type="inconsistent",
                message="Reimbursed before the date of service",
                severity="warning",
                suggested_fix="Please verify the reimbursement date",
            ))

        # Explicit tax year far from when care happened
        if payload.tax_year is not None:
            drift = abs(payload.tax_year - payload.date_of_service.year)
            if drift > self._settings.tax_year_tolerance:
                issues.append(ValidationIssue(
                    field="tax_year",
                    issue_type="suspicious_value",
                    message=(
                        f"Tax year {payload.tax_year} is {drift} years from the "
                        f"service year {payload.date_of_service.year}"
                    ),
                    severity="warning",
                    suggested_fix="Leave tax year blank to use the service year",
                ))

        if not payload.receipt_urls:
            issues.append(ValidationIssue(
                field="receipt_urls",
                issue_type="missing_document",
                message="No receipt attached yet; the expense isn't audit-ready",
                severity="warning",
                suggested_fix="Upload the itemized receipt when you have it",
            ))

        # Semantic validation passes if no errors
        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    async def _check_duplicates(
        self,
        payload: ExpenseInput,
        user_id: str,
        exclude_id: Optional[UUID],
    ) -> list[ValidationIssue]:
        """
        Flag an existing expense with the same date, amount and provider.

        This requires storage access.
        """
        if self._storage is None:
            return []

        try:
            existing = await self._storage.list_expenses(
                user_id,
                tax_year=payload.date_of_service.year,
            )
        except Exception as e:
            # Duplicate detection is advisory; don't block on storage errors
            logger.warning("duplicate_check_failed", user_id=user_id, error=str(e))
            return []

        provider = payload.provider.lower()
        for expense in existing:
            if expense.id == exclude_id:
                continue
            if (
                expense.date_of_service == payload.date_of_service
                and expense.amount == payload.amount
                and expense.provider.lower() == provider
            ):
                return [ValidationIssue(
                    field="duplicate",
                    issue_type="potential_duplicate",
                    message=(
                        f"An expense of ${payload.amount:,.2f} on "
                        f"{payload.date_of_service} may already exist"
                    ),
                    severity="warning",
                    suggested_fix="Please verify this isn't a duplicate entry",
                )]

        return []

    async def validate(
        self,
        payload: ExpenseInput,
        user_id: Optional[str] = None,
        check_duplicates: bool = True,
        exclude_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            payload: Form input to validate
            user_id: Owner, needed for duplicate checks
            check_duplicates: Whether to check for duplicates (requires storage)
            exclude_id: Expense being edited, so it doesn't match itself
            today: Reference date for the future-date check

        Returns:
            ValidationResult with all issues found
        """
        today = today or date.today()
        all_issues = []

        # Stage 1: Schema validation
        schema_valid, schema_issues = self._validate_schema(payload)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(payload, today)
            all_issues.extend(semantic_issues)

            if check_duplicates and user_id:
                all_issues.extend(
                    await self._check_duplicates(payload, user_id, exclude_id)
                )

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the expense form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        if result.has_errors:
            lines.append("❌ Please fix the following before saving:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please double-check:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        if result.is_valid:
            lines.append("")
            lines.append("You can still save, but please review carefully.")

        return "\n".join(lines)
