"""Tests for the two-stage expense validator."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from hsa_tracker.config.settings import AppSettings
from hsa_tracker.models.expense import ExpenseInput
from hsa_tracker.validation import ExpenseValidator
from tests.fakes import InMemoryExpenseStorage, make_expense


TODAY = date(2026, 10, 18)


def payload(**overrides) -> ExpenseInput:
    data = {
        "description": "Annual eye exam",
        "amount": Decimal("150.00"),
        "date_of_service": date(2026, 3, 10),
        "provider": "Bright Eyes Optometry",
        "receipt_urls": ["https://x/receipt.png"],
    }
    data.update(overrides)
    return ExpenseInput(**data)


@pytest.fixture
def validator():
    return ExpenseValidator(app_settings=AppSettings())


def issue_types(result) -> set[str]:
    return {i.issue_type for i in result.issues}


class TestSchemaValidation:
    """Stage 1: structure of the form input."""

    def test_valid_payload(self, validator):
        result = asyncio.run(validator.validate(payload(), today=TODAY))
        assert result.is_valid is True
        assert result.issues == []
        assert validator.get_user_friendly_summary(result) == "✅ All checks passed."

    def test_reports_every_missing_field(self, validator):
        """Test that all required fields are reported at once."""
        result = asyncio.run(validator.validate(ExpenseInput(), today=TODAY))
        assert result.schema_valid is False
        assert result.semantic_valid is False
        assert {i.field for i in result.issues} == {"description", "amount", "date_of_service"}

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00")])
    def test_amount_must_be_positive(self, validator, amount):
        result = asyncio.run(validator.validate(payload(amount=amount), today=TODAY))
        assert result.is_valid is False
        assert result.issues[0].field == "amount"

    def test_end_before_start(self, validator):
        result = asyncio.run(validator.validate(
            payload(date_of_service_end=date(2026, 3, 9)), today=TODAY
        ))
        assert result.schema_valid is False
        assert result.issues[0].field == "date_of_service_end"

    def test_reimbursed_needs_amount(self, validator):
        result = asyncio.run(validator.validate(payload(reimbursed=True), today=TODAY))
        assert result.is_valid is False
        assert result.issues[0].field == "reimbursed_amount"

    def test_semantic_stage_skipped_on_schema_errors(self, validator):
        result = asyncio.run(validator.validate(
            payload(description="", receipt_urls=[]), today=TODAY
        ))
        assert "missing_document" not in issue_types(result)


class TestSemanticValidation:
    """Stage 2: plausibility."""

    def test_future_date_within_tolerance(self, validator):
        result = asyncio.run(validator.validate(
            payload(date_of_service=date(2026, 10, 25)), today=TODAY
        ))
        assert "future_date" not in issue_types(result)

    def test_future_date_beyond_tolerance_warns(self, validator):
        result = asyncio.run(validator.validate(
            payload(date_of_service=date(2026, 10, 26)), today=TODAY
        ))
        assert result.is_valid is True
        assert "future_date" in issue_types(result)

    def test_large_amount_warns(self, validator):
        result = asyncio.run(validator.validate(
            payload(amount=Decimal("100000.01")), today=TODAY
        ))
        assert result.is_valid is True
        assert "suspicious_value" in issue_types(result)

    def test_reimbursed_more_than_paid_is_error(self, validator):
        result = asyncio.run(validator.validate(
            payload(reimbursed=True, reimbursed_amount=Decimal("150.01")), today=TODAY
        ))
        assert result.schema_valid is True
        assert result.semantic_valid is False
        assert result.is_valid is False
        summary = validator.get_user_friendly_summary(result)
        assert summary.startswith("❌ Please fix the following before saving:")

    def test_partial_reimbursement_ok(self, validator):
        result = asyncio.run(validator.validate(
            payload(reimbursed=True, reimbursed_amount=Decimal("100.00")), today=TODAY
        ))
        assert result.is_valid is True

    def test_reimbursed_before_service_warns(self, validator):
        result = asyncio.run(validator.validate(
            payload(
                reimbursed=True,
                reimbursed_amount=Decimal("150.00"),
                reimbursed_date=date(2026, 3, 1),
            ),
            today=TODAY,
        ))
        assert result.is_valid is True
        assert any(i.field == "reimbursed_date" for i in result.issues)

    def test_tax_year_drift(self, validator):
        near = asyncio.run(validator.validate(payload(tax_year=2027), today=TODAY))
        far = asyncio.run(validator.validate(payload(tax_year=2029), today=TODAY))
        assert not any(i.field == "tax_year" for i in near.issues)
        assert any(i.field == "tax_year" for i in far.issues)

    def test_missing_receipt_warns(self, validator):
        result = asyncio.run(validator.validate(payload(receipt_urls=[]), today=TODAY))
        assert result.is_valid is True
        assert result.warnings == ["No receipt attached yet; the expense isn't audit-ready"]
        assert "You can still save" in validator.get_user_friendly_summary(result)


class TestDuplicateDetection:
    """Duplicate check against the user's stored expenses."""

    def make_validator(self, storage):
        return ExpenseValidator(storage, AppSettings())

    def test_flags_same_date_amount_provider(self):
        storage = InMemoryExpenseStorage([
            make_expense(provider="BRIGHT EYES OPTOMETRY"),
        ])
        result = asyncio.run(self.make_validator(storage).validate(
            payload(), user_id="user-1", today=TODAY
        ))
        assert result.is_valid is True
        assert "potential_duplicate" in issue_types(result)

    def test_other_users_expenses_ignored(self):
        storage = InMemoryExpenseStorage([make_expense(user_id="someone-else")])
        result = asyncio.run(self.make_validator(storage).validate(
            payload(), user_id="user-1", today=TODAY
        ))
        assert "potential_duplicate" not in issue_types(result)

    def test_edited_expense_does_not_match_itself(self):
        existing = make_expense()
        storage = InMemoryExpenseStorage([existing])
        result = asyncio.run(self.make_validator(storage).validate(
            payload(), user_id="user-1", exclude_id=existing.id, today=TODAY
        ))
        assert "potential_duplicate" not in issue_types(result)

    def test_storage_failure_does_not_block(self):
        storage = InMemoryExpenseStorage([make_expense()])
        storage.fail_reads = True
        result = asyncio.run(self.make_validator(storage).validate(
            payload(), user_id="user-1", today=TODAY
        ))
        assert result.is_valid is True
        assert "potential_duplicate" not in issue_types(result)

    def test_skipped_without_user(self):
        storage = InMemoryExpenseStorage([make_expense()])
        result = asyncio.run(self.make_validator(storage).validate(payload(), today=TODAY))
        assert "potential_duplicate" not in issue_types(result)
