"""
Dashboard Aggregation

Reduces a user's expenses to the summary numbers the dashboard, the
calculator and the email digest display.

DESIGN DECISION: Aggregation is DETERMINISTIC and pure.
It takes a fully loaded expense list, touches no storage, and returns the same
DashboardStats for the same input every time. Money stays in Decimal
throughout so repeated runs are bit-identical.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from hsa_tracker.compliance import is_audit_ready, needs_retention_alert
from hsa_tracker.models.expense import AccountType, Expense
from hsa_tracker.models.profile import DEFAULT_PROJECTION_PARAMETERS, ProjectionParameters
from hsa_tracker.models.stats import (
    AccountTotals,
    AuditReadiness,
    DashboardStats,
    ExpectedReturn,
)


ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    """Round half up to currency precision."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def reimbursed_value(expense: Expense) -> Decimal:
    """
    Amount counted as reimbursed for an expense flagged reimbursed.

    Without an explicit reimbursed amount we assume the expense was
    reimbursed in full.
    """
    if expense.reimbursed_amount is not None:
        return expense.reimbursed_amount
    return expense.amount


def total_amount(expenses: Iterable[Expense]) -> Decimal:
    return sum((e.amount for e in expenses), ZERO)


def total_reimbursed(expenses: Iterable[Expense]) -> Decimal:
    return sum((reimbursed_value(e) for e in expenses if e.reimbursed), ZERO)


def account_totals(expenses: Iterable[Expense]) -> AccountTotals:
    """Per-account totals. Expenses without a known account are left out."""
    totals = {account: ZERO for account in AccountType}
    for expense in expenses:
        if expense.account_type in totals:
            totals[expense.account_type] += expense.amount
    return AccountTotals(
        hsa=totals[AccountType.HSA],
        lpfsa=totals[AccountType.LPFSA],
        hcfsa=totals[AccountType.HCFSA],
    )


def audit_readiness(expenses: list[Expense]) -> AuditReadiness:
    ready = sum(1 for e in expenses if is_audit_ready(e))
    return AuditReadiness(
        total=len(expenses),
        ready=ready,
        missing=len(expenses) - ready,
    )


def calculate_expected_return(
    expenses: Iterable[Expense],
    annual_return_pct: float,
    time_horizon_years: int,
) -> ExpectedReturn:
    """
    Value of pending expenses if left invested for the whole horizon.

    NOTE: This compounds each unreimbursed amount once over the full horizon,
    regardless of how long it has already been outstanding. It is a different
    model from the year-by-year projection engine and must stay that way.
    """
    years = max(0, int(time_horizon_years))
    if years == 0:
        growth_factor = Decimal("1")
    else:
        growth_factor = (1 + Decimal(str(annual_return_pct)) / 100) ** years

    pending = ZERO
    projected = ZERO
    for expense in expenses:
        if expense.reimbursed:
            continue
        pending += expense.amount
        projected += expense.amount * growth_factor

    return ExpectedReturn(
        projected_value=to_cents(projected),
        extra_growth=to_cents(projected - pending),
    )


def compute_dashboard_stats(
    expenses: Iterable[Expense],
    params: Optional[ProjectionParameters] = None,
    current_year: Optional[int] = None,
) -> DashboardStats:
    """
    Summarize a user's expenses for the dashboard.

    Args:
        expenses: Every expense owned by the user
        params: Projection assumptions; defaults when the user has no profile
        current_year: Calendar year for retention checks (defaults to today)
    """
    params = params or DEFAULT_PROJECTION_PARAMETERS
    expenses = list(expenses)

    total = total_amount(expenses)
    reimbursed = total_reimbursed(expenses)

    return DashboardStats(
        total_expenses=total,
        total_reimbursed=reimbursed,
        pending_reimbursement=total - reimbursed,
        expense_count=len(expenses),
        by_account=account_totals(expenses),
        audit_readiness=audit_readiness(expenses),
        retention_alerts=sum(
            1 for e in expenses if needs_retention_alert(e, current_year)
        ),
        expected_return=calculate_expected_return(
            expenses,
            params.annual_return_pct,
            params.time_horizon_years,
        ),
    )
