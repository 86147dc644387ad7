"""
Tax Year Summary

Groups expenses by the tax year they are filed under and produces the
per-year breakdown users hand to their tax preparer, plus a CSV export.
"""

import csv
import io
from collections import defaultdict
from typing import Iterable

from hsa_tracker.compliance import is_audit_ready
from hsa_tracker.models.expense import Expense, ExpenseCategory
from hsa_tracker.models.stats import CategoryBreakdown, TaxYearSummary
from hsa_tracker.queries.stats import (
    ZERO,
    account_totals,
    reimbursed_value,
    total_amount,
    total_reimbursed,
)


CATEGORY_LABELS: dict[ExpenseCategory, str] = {
    ExpenseCategory.MEDICAL: "Medical",
    ExpenseCategory.DENTAL: "Dental",
    ExpenseCategory.VISION: "Vision",
    ExpenseCategory.PRESCRIPTION: "Prescription",
    ExpenseCategory.MENTAL_HEALTH: "Mental Health",
    ExpenseCategory.HEARING: "Hearing",
    ExpenseCategory.PREVENTIVE_CARE: "Preventive Care",
    ExpenseCategory.OTHER: "Other",
}

CSV_HEADER = [
    "Date of Service",
    "Description",
    "Provider",
    "Patient",
    "Category",
    "Expense Type",
    "Account",
    "Amount",
    "Reimbursed",
    "Reimbursed Amount",
    "Reimbursed Date",
    "Audit Ready",
    "Tax Year",
]


def _category_breakdown(expenses: list[Expense]) -> list[CategoryBreakdown]:
    buckets: dict[ExpenseCategory, dict] = {}
    for expense in expenses:
        bucket = buckets.setdefault(expense.category, {
            "count": 0, "total": ZERO, "reimbursed": ZERO, "pending": ZERO,
        })
        bucket["count"] += 1
        bucket["total"] += expense.amount
        if expense.reimbursed:
            bucket["reimbursed"] += reimbursed_value(expense)
        else:
            bucket["pending"] += expense.amount

    breakdown = [
        CategoryBreakdown(category=category, **values)
        for category, values in buckets.items()
    ]
    # Largest categories first
    breakdown.sort(key=lambda b: b.total, reverse=True)
    return breakdown


def summarize_tax_years(expenses: Iterable[Expense]) -> list[TaxYearSummary]:
    """One summary per tax year, newest year first."""
    by_year: dict[int, list[Expense]] = defaultdict(list)
    for expense in expenses:
        by_year[expense.effective_tax_year].append(expense)

    summaries = []
    for year, year_expenses in by_year.items():
        year_expenses.sort(key=lambda e: e.date_of_service)
        total = total_amount(year_expenses)
        reimbursed = total_reimbursed(year_expenses)
        ready = sum(1 for e in year_expenses if is_audit_ready(e))

        summaries.append(TaxYearSummary(
            year=year,
            expenses=year_expenses,
            total=total,
            reimbursed=reimbursed,
            pending=total - reimbursed,
            audit_ready=ready,
            audit_missing=len(year_expenses) - ready,
            by_category=_category_breakdown(year_expenses),
            by_account=account_totals(year_expenses),
        ))

    summaries.sort(key=lambda s: s.year, reverse=True)
    return summaries


def tax_year_csv(summary: TaxYearSummary) -> str:
    """Render one tax year as CSV: expense rows, totals, then categories."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    writer.writerow(CSV_HEADER)
    for e in summary.expenses:
        writer.writerow([
            e.date_of_service.isoformat(),
            e.description,
            e.provider,
            e.patient_name,
            CATEGORY_LABELS.get(e.category, e.category.value),
            e.expense_type,
            e.account_type.value.upper() if e.account_type else "",
            f"{e.amount:.2f}",
            "Yes" if e.reimbursed else "No",
            f"{e.reimbursed_amount:.2f}" if e.reimbursed_amount is not None else "",
            e.reimbursed_date.isoformat() if e.reimbursed_date else "",
            "Yes" if is_audit_ready(e) else "No",
            str(e.effective_tax_year),
        ])

    padding = [""] * 6
    writer.writerow([])
    writer.writerow([f"Tax Year {summary.year} Summary"])
    writer.writerow(["Total Expenses", *padding, f"{summary.total:.2f}"])
    writer.writerow(["Total Reimbursed", *padding, f"{summary.reimbursed:.2f}"])
    writer.writerow(["Pending Reimbursement", *padding, f"{summary.pending:.2f}"])
    writer.writerow([])
    writer.writerow(["Category", "Count", "Total"])
    for cat in summary.by_category:
        writer.writerow([
            CATEGORY_LABELS.get(cat.category, cat.category.value),
            cat.count,
            f"{cat.total:.2f}",
        ])

    return buffer.getvalue()
