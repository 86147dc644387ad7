"""
Core Data Models for HSA Tracker

These models define the strict schemas for the expense records users keep.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: We use Pydantic v2 and put record invariants (reimbursement
fields, derived tax year) on the model itself. Rows loaded from storage go
through Expense.from_record, which tolerates a reimbursed row missing its
amount or date so the totals still count it.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """
    Account an expense is paid from (or will be reimbursed from).

    HSA is the tax-advantaged account whose growth we project.
    The FSA variants are tracked for totals only.
    """
    HSA = "hsa"
    LPFSA = "lpfsa"  # Limited-purpose FSA (dental/vision)
    HCFSA = "hcfsa"  # Health-care FSA


class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    DESIGN DECISION: Using explicit categories rather than free text ensures
    consistent categorization and enables reliable tax-year breakdowns.
    """
    MEDICAL = "medical"
    DENTAL = "dental"
    VISION = "vision"
    PRESCRIPTION = "prescription"
    MENTAL_HEALTH = "mental_health"
    HEARING = "hearing"
    PREVENTIVE_CARE = "preventive_care"
    OTHER = "other"


class PatientRelationship(str, Enum):
    """Who received the care, relative to the account holder."""
    SELF = "self"
    SPOUSE = "spouse"
    DEPENDENT_CHILD = "dependent_child"
    DOMESTIC_PARTNER = "domestic_partner"


class ClaimType(str, Enum):
    """Claim type as used on reimbursement request forms."""
    NEW = "new"
    RESUBMISSION = "resubmission"
    APPEAL = "appeal"


class DocumentKind(str, Enum):
    """
    Kinds of supporting documents attached to an expense.

    Receipt plus EOB or invoice makes an expense audit-ready.
    The credit card statement is informational only.
    """
    RECEIPT = "receipt"
    EOB = "eob"  # Explanation of Benefits
    INVOICE = "invoice"
    CREDIT_CARD_STATEMENT = "credit_card_statement"


class RetentionStatus(str, Enum):
    """Where a tax year sits relative to the IRS record retention window."""
    SAFE = "safe"
    WARNING = "warning"    # One year before the window closes
    CRITICAL = "critical"  # At or past the retention window


# Attribute on Expense holding the URLs for each document kind
DOCUMENT_FIELDS: dict[DocumentKind, str] = {
    DocumentKind.RECEIPT: "receipt_urls",
    DocumentKind.EOB: "eob_urls",
    DocumentKind.INVOICE: "invoice_urls",
    DocumentKind.CREDIT_CARD_STATEMENT: "credit_card_statement_urls",
}


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class Expense(BaseModel):
    """
    One out-of-pocket medical expense.

    CRITICAL: reimbursement fields travel together.
    - reimbursed=True  -> reimbursed_amount and reimbursed_date are present
    - reimbursed=False -> both are absent
    Only from_record relaxes this, for rows already in storage.

    Retention status is derived on read and never deletes anything.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense ID"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of this expense"
    )

    # Timestamps
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the expense was recorded"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Last update timestamp"
    )

    # What was paid
    description: str = Field(
        default="",
        max_length=500,
        description="What the expense was for"
    )
    amount: Annotated[
        Decimal,
        Field(ge=0, decimal_places=2, description="Amount paid out of pocket in USD")
    ]
    date_of_service: date = Field(
        ...,
        description="Date care was received"
    )
    date_of_service_end: Optional[date] = Field(
        default=None,
        description="Last date of care for multi-day services"
    )

    # Who and where
    provider: str = Field(default="", max_length=200)
    patient_name: str = Field(default="", max_length=200)
    patient_relationship: PatientRelationship = PatientRelationship.SELF

    # Classification
    account_type: Optional[AccountType] = Field(
        default=AccountType.HSA,
        description="Account this expense belongs to"
    )
    category: ExpenseCategory = ExpenseCategory.MEDICAL
    expense_type: str = Field(
        default="",
        max_length=200,
        description="Eligible expense type, e.g. 'Eye exam'"
    )
    claim_type: ClaimType = ClaimType.NEW
    payment_method: str = Field(default="credit_card", max_length=50)
    notes: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="User notes about this expense"
    )

    # Reimbursement
    reimbursed: bool = False
    reimbursed_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        decimal_places=2,
    )
    reimbursed_date: Optional[date] = None

    # Tax year this expense is filed under
    tax_year: Optional[int] = Field(
        default=None,
        ge=1900,
        le=9999,
        description="Explicit tax year; defaults to the service date's year"
    )

    # Supporting documents (opaque URLs)
    receipt_urls: list[str] = Field(default_factory=list)
    eob_urls: list[str] = Field(default_factory=list)
    invoice_urls: list[str] = Field(default_factory=list)
    credit_card_statement_urls: list[str] = Field(default_factory=list)

    @classmethod
    def from_record(cls, data: dict) -> 'Expense':
        """
        Load a stored expense.

        Older rows can be flagged reimbursed without an amount or date. They
        are kept, and aggregation counts them as reimbursed in full.
        """
        return cls.model_validate(data, context={"stored_record": True})

    @model_validator(mode='after')
    def validate_record(self, info: ValidationInfo) -> 'Expense':
        """Enforce reimbursement pairing and derive the tax year."""
        stored = bool(info.context and info.context.get("stored_record"))

        if not stored:
            if self.reimbursed:
                if self.reimbursed_amount is None or self.reimbursed_date is None:
                    raise ValueError(
                        "Reimbursed expenses need both reimbursed_amount and reimbursed_date"
                    )
            elif self.reimbursed_amount is not None or self.reimbursed_date is not None:
                raise ValueError(
                    "reimbursed_amount and reimbursed_date are only allowed on reimbursed expenses"
                )

        if self.date_of_service_end and self.date_of_service_end < self.date_of_service:
            raise ValueError("Service end date cannot be before service date")

        if self.tax_year is None:
            self.tax_year = self.date_of_service.year

        return self

    @property
    def effective_tax_year(self) -> int:
        """Tax year used by retention rules."""
        return self.tax_year if self.tax_year is not None else self.date_of_service.year

    @property
    def audit_ready(self) -> bool:
        from hsa_tracker.compliance import is_audit_ready
        return is_audit_ready(self)

    def documents(self, kind: DocumentKind) -> list[str]:
        """URLs attached for one document kind."""
        return list(getattr(self, DOCUMENT_FIELDS[kind]))

    def with_document(self, kind: DocumentKind, url: str) -> 'Expense':
        """Return a copy with a document URL attached."""
        field_name = DOCUMENT_FIELDS[kind]
        urls = getattr(self, field_name)
        if url in urls:
            return self
        return self.model_copy(update={
            field_name: [*urls, url],
            "updated_at": datetime.utcnow(),
        })

    def without_document(self, url: str) -> 'Expense':
        """Return a copy with a URL removed from whichever list holds it."""
        update = {}
        for field_name in DOCUMENT_FIELDS.values():
            urls = getattr(self, field_name)
            if url in urls:
                update[field_name] = [u for u in urls if u != url]
        if not update:
            return self
        update["updated_at"] = datetime.utcnow()
        return self.model_copy(update=update)


class ExpenseInput(BaseModel):
    """
    Raw form payload for creating or editing an expense.

    Unlike Expense, everything here is loosely typed so the validator can
    report every problem at once instead of failing on the first one.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = ""
    amount: Optional[Decimal] = None
    date_of_service: Optional[date] = None
    date_of_service_end: Optional[date] = None
    provider: str = ""
    patient_name: str = ""
    patient_relationship: PatientRelationship = PatientRelationship.SELF
    account_type: AccountType = AccountType.HSA
    category: ExpenseCategory = ExpenseCategory.MEDICAL
    expense_type: str = ""
    claim_type: ClaimType = ClaimType.NEW
    payment_method: str = "credit_card"
    notes: Optional[str] = None
    reimbursed: bool = False
    reimbursed_amount: Optional[Decimal] = None
    reimbursed_date: Optional[date] = None
    tax_year: Optional[int] = None
    receipt_urls: list[str] = Field(default_factory=list)
    eob_urls: list[str] = Field(default_factory=list)
    invoice_urls: list[str] = Field(default_factory=list)
    credit_card_statement_urls: list[str] = Field(default_factory=list)

    def to_expense(self, user_id: str, **overrides) -> Expense:
        """Build a validated Expense owned by user_id."""
        data = self.model_dump()
        if not data["reimbursed"]:
            data["reimbursed_amount"] = None
            data["reimbursed_date"] = None
        data.update(overrides)
        return Expense(user_id=user_id, **data)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (required fields, basic ranges)
    Stage 2: Semantic validation (dates, amounts, documentation)
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    schema_valid: bool = Field(
        ...,
        description="Did schema validation pass?"
    )
    semantic_valid: bool = Field(
        ...,
        description="Did semantic validation pass?"
    )
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )

    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
