"""
IRS Recordkeeping Rules

Pure predicates over expense records. No I/O, no side effects, never raise.

Per IRS guidance an HSA holder must be able to prove every distribution was
for a qualified medical expense. Unproven purchases found in an audit owe
income tax plus a 20% penalty. A return stays open for seven years after
filing, so the records must be kept at least that long.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from hsa_tracker.models.expense import DocumentKind, Expense, RetentionStatus


# Tax returns remain open for audit this many years after filing
RETENTION_YEARS = 7

# How many years before the window closes we start warning
RETENTION_WARNING_LEAD_YEARS = 1

# Penalty on HSA purchases that can't be proven during an audit
UNPROVEN_PENALTY_RATE = Decimal("0.20")


def is_audit_ready(expense: Expense) -> bool:
    """
    Whether an expense has enough documentation to survive an audit.

    A receipt is always required. An EOB or an invoice supplies the second
    proof. The credit card statement is informational and never counts.
    """
    return bool(expense.receipt_urls) and bool(expense.eob_urls or expense.invoice_urls)


def missing_documents(expense: Expense) -> list[DocumentKind]:
    """Required document kinds still absent, in the order a user should add them."""
    missing = []
    if not expense.receipt_urls:
        missing.append(DocumentKind.RECEIPT)
    if not expense.eob_urls and not expense.invoice_urls:
        missing.append(DocumentKind.EOB)
        missing.append(DocumentKind.INVOICE)
    return missing


def get_retention_status(
    tax_year: int,
    current_year: Optional[int] = None,
) -> RetentionStatus:
    """Classify a tax year against the retention window."""
    if current_year is None:
        current_year = date.today().year

    years_elapsed = current_year - tax_year
    if years_elapsed >= RETENTION_YEARS:
        return RetentionStatus.CRITICAL
    if years_elapsed >= RETENTION_YEARS - RETENTION_WARNING_LEAD_YEARS:
        return RetentionStatus.WARNING
    return RetentionStatus.SAFE


def needs_retention_alert(
    expense: Expense,
    current_year: Optional[int] = None,
) -> bool:
    """True when the expense's tax year is near or past the retention window."""
    status = get_retention_status(expense.effective_tax_year, current_year)
    return status in (RetentionStatus.WARNING, RetentionStatus.CRITICAL)


def unproven_penalty(expenses: Iterable[Expense]) -> Decimal:
    """Penalty owed if every expense that isn't audit-ready were challenged."""
    exposed = sum(
        (e.amount for e in expenses if not is_audit_ready(e)),
        Decimal("0"),
    )
    return (exposed * UNPROVEN_PENALTY_RATE).quantize(Decimal("0.01"))
