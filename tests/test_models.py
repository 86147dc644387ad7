"""
Tests for HSA Tracker

Test strategy:
1. Unit tests for individual components (models, rules, engines)
2. Integration tests for flows (with in-memory external services)
3. No real API calls in tests (use fakes)
"""

import json
import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from hsa_tracker.models.expense import (
    AccountType,
    DocumentKind,
    Expense,
    ExpenseCategory,
    ExpenseInput,
    ValidationIssue,
    ValidationResult,
)
from hsa_tracker.models.profile import (
    DEFAULT_PROJECTION_PARAMETERS,
    DigestFrequency,
    Profile,
    ProjectionParameters,
    parameters_for,
)
from hsa_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from tests.fakes import make_expense


class TestExpenseModel:
    """Tests for the Expense record."""

    def test_expense_creation(self):
        """Test Expense model creation with defaults."""
        expense = make_expense()
        assert expense.amount == Decimal("150.00")
        assert expense.account_type == AccountType.HSA
        assert expense.category == ExpenseCategory.MEDICAL
        assert expense.reimbursed is False

    def test_tax_year_defaults_to_service_year(self):
        """Test that a missing tax year is derived from the service date."""
        expense = make_expense(date_of_service=date(2024, 12, 30))
        assert expense.tax_year == 2024
        assert expense.effective_tax_year == 2024

    def test_explicit_tax_year_kept(self):
        expense = make_expense(date_of_service=date(2024, 12, 30), tax_year=2025)
        assert expense.effective_tax_year == 2025

    def test_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            make_expense(amount=Decimal("-1.00"))

    def test_reimbursed_requires_amount_and_date(self):
        """Test that a reimbursed expense must carry both reimbursement fields."""
        with pytest.raises(ValueError):
            make_expense(reimbursed=True, reimbursed_amount=Decimal("150.00"))
        with pytest.raises(ValueError):
            make_expense(reimbursed=True, reimbursed_date=date(2026, 4, 1))

    def test_unreimbursed_rejects_reimbursement_fields(self):
        with pytest.raises(ValueError):
            make_expense(reimbursed_amount=Decimal("10.00"))

    def test_from_record_accepts_reimbursed_without_date(self):
        """Test that stored rows keep loading when the reimbursement date is missing."""
        expense = Expense.from_record({
            "amount": Decimal("50.00"),
            "date_of_service": date(2023, 6, 1),
            "reimbursed": True,
            "reimbursed_amount": Decimal("40.00"),
        })
        assert expense.reimbursed is True
        assert expense.reimbursed_date is None
        assert expense.tax_year == 2023

    def test_from_record_still_checks_service_dates(self):
        with pytest.raises(ValueError):
            Expense.from_record({
                "amount": Decimal("50.00"),
                "date_of_service": date(2023, 6, 5),
                "date_of_service_end": date(2023, 6, 1),
            })

    def test_service_end_before_start_rejected(self):
        with pytest.raises(ValueError):
            make_expense(date_of_service_end=date(2026, 3, 9))

    def test_with_document_appends_once(self):
        """Test attaching the same URL twice keeps a single copy."""
        expense = make_expense()
        updated = expense.with_document(DocumentKind.RECEIPT, "https://x/r.png")
        again = updated.with_document(DocumentKind.RECEIPT, "https://x/r.png")

        assert expense.receipt_urls == []
        assert updated.receipt_urls == ["https://x/r.png"]
        assert again is updated

    def test_without_document(self):
        expense = make_expense(
            receipt_urls=["https://x/r.png"],
            eob_urls=["https://x/e.pdf"],
        )
        updated = expense.without_document("https://x/e.pdf")
        assert updated.eob_urls == []
        assert updated.receipt_urls == ["https://x/r.png"]
        assert expense.without_document("https://x/missing.pdf") is expense

    def test_audit_ready_property(self):
        expense = make_expense(receipt_urls=["r"], invoice_urls=["i"])
        assert expense.audit_ready is True
        assert make_expense(receipt_urls=["r"]).audit_ready is False


class TestExpenseInput:
    """Tests for the raw form payload."""

    def test_to_expense_clears_reimbursement_when_not_reimbursed(self):
        """Test that stale reimbursement fields are dropped."""
        payload = ExpenseInput(
            description="Dental cleaning",
            amount=Decimal("95.00"),
            date_of_service=date(2026, 2, 2),
            reimbursed=False,
            reimbursed_amount=Decimal("95.00"),
            reimbursed_date=date(2026, 2, 3),
        )
        expense = payload.to_expense("user-1")
        assert expense.user_id == "user-1"
        assert expense.reimbursed_amount is None
        assert expense.reimbursed_date is None

    def test_to_expense_overrides(self):
        expense_id = uuid4()
        payload = ExpenseInput(
            description="Dental cleaning",
            amount=Decimal("95.00"),
            date_of_service=date(2026, 2, 2),
        )
        assert payload.to_expense("user-1", id=expense_id).id == expense_id

    def test_strips_whitespace(self):
        """Test that whitespace is stripped from text fields."""
        payload = ExpenseInput(description="  Eye exam  ")
        assert payload.description == "Eye exam"


class TestProfileModel:
    """Tests for the profile and its projection assumptions."""

    def test_missing_assumptions_use_defaults(self):
        profile = Profile(id="user-1", expected_annual_return=5.0)
        params = profile.projection_parameters()
        assert params.annual_return_pct == 5.0
        assert params.time_horizon_years == DEFAULT_PROJECTION_PARAMETERS.time_horizon_years
        assert params.annual_contribution == DEFAULT_PROJECTION_PARAMETERS.annual_contribution

    def test_zero_is_not_replaced_by_default(self):
        """Test that an explicit zero is kept as zero."""
        profile = Profile(id="user-1", time_horizon_years=0, current_hsa_balance=0.0)
        params = profile.projection_parameters()
        assert params.time_horizon_years == 0
        assert params.initial_balance == 0.0

    def test_parameters_for_no_profile(self):
        assert parameters_for(None) == DEFAULT_PROJECTION_PARAMETERS

    def test_display_name_fallback(self):
        assert Profile(id="u").display_name == "there"
        assert Profile(id="u", first_name="Dana").display_name == "Dana"

    def test_bank_linked(self):
        assert Profile(id="u").bank_linked is False
        assert Profile(id="u", plaid_access_token="access-1").bank_linked is True

    def test_defaults(self):
        profile = Profile(id="u")
        assert profile.email_digest_enabled is False
        assert profile.email_digest_frequency == DigestFrequency.MONTHLY

    def test_parameters_are_frozen(self):
        params = ProjectionParameters()
        with pytest.raises(ValueError):
            params.annual_return_pct = 9.0

    def test_combined_tax_rate(self):
        params = ProjectionParameters(federal_tax_pct=22.0, state_tax_pct=5.0)
        assert params.combined_tax_rate == pytest.approx(0.27)


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            description="Expense recorded",
        )
        assert event.event_type == AuditEventType.EXPENSE_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None
        assert isinstance(event.timestamp, datetime)

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        entity_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            user_id="user-1",
            entity_type="expense",
            entity_id=entity_id,
            description="Expense deleted",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "expense_deleted"
        assert log_dict["user_id"] == "user-1"
        assert log_dict["entity_id"] == str(entity_id)
        assert log_dict["correlation_id"] is None

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            user_id="user-1",
            description="Profile updated",
            details={"changed_fields": ["first_name"]},
        )
        row = event.to_sheets_row()
        assert len(row) == 12
        assert row[2] == "profile_updated"
        assert row[4] == "user-1"
        assert json.loads(row[9]) == {"changed_fields": ["first_name"]}

    def test_audit_event_builder_expense_created(self):
        """Test AuditEventBuilder for expense creation."""
        expense_id = uuid4()
        correlation_id = uuid4()
        event = AuditEventBuilder.expense_created(
            expense_id, "user-1", "150.00", correlation_id
        )
        assert event.event_type == AuditEventType.EXPENSE_CREATED
        assert event.entity_id == expense_id
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True
        assert event.details["amount"] == "150.00"

    def test_audit_event_builder_digest_failed(self):
        """Test AuditEventBuilder for digest failures."""
        event = AuditEventBuilder.digest_failed("user-1", "bounced", uuid4())
        assert event.event_type == AuditEventType.DIGEST_FAILED
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "bounced"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Amount is required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test result with only warnings."""
        result = ValidationResult(
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="receipt_urls",
                    issue_type="missing_document",
                    message="No receipt attached yet",
                    severity="warning",
                ),
            ],
            warnings=["No receipt attached yet"],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert len(result.warnings) == 1
