"""
Derived Result Models

Everything in this module is computed from expenses and projection
parameters on demand. None of it is persisted.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from hsa_tracker.models.expense import Expense, ExpenseCategory
from hsa_tracker.models.profile import ProjectionParameters


# =============================================================================
# PROJECTION
# =============================================================================

class ProjectionPoint(BaseModel):
    """One simulated year. Money values are whole dollars."""

    year: int = Field(..., description="Year offset from today (0 = now)")
    label: str = Field(..., description="Calendar year label")
    balance: int = Field(..., description="HSA balance under tax-free growth")
    total_contributions: int
    total_growth: int
    tax_savings_cumulative: int
    taxable_equivalent: int = Field(
        ...,
        description="Same money in a taxable brokerage account"
    )


class ProjectionSummary(BaseModel):
    """Headline numbers taken from the final projection year."""

    projected_balance: int
    total_contributed: int
    total_growth: int
    total_tax_savings: int
    hsa_advantage: int = Field(
        ...,
        description="Final HSA balance minus the taxable equivalent"
    )


class Projection(BaseModel):
    points: list[ProjectionPoint]
    summary: ProjectionSummary


class ScenarioResult(BaseModel):
    """One named scenario in a side-by-side comparison."""

    name: str
    parameters: ProjectionParameters
    summary: ProjectionSummary
    balance_delta: int = Field(
        default=0,
        description="Projected balance minus the first scenario's"
    )


# =============================================================================
# DASHBOARD
# =============================================================================

class AccountTotals(BaseModel):
    """Expense totals per account type."""

    hsa: Decimal = Decimal("0")
    lpfsa: Decimal = Decimal("0")
    hcfsa: Decimal = Decimal("0")


class AuditReadiness(BaseModel):
    total: int = 0
    ready: int = 0
    missing: int = 0

    @property
    def ready_pct(self) -> int:
        """Whole-number percent ready; an empty list counts as fully ready."""
        if self.total == 0:
            return 100
        return int(Decimal(self.ready * 100) / Decimal(self.total) + Decimal("0.5"))


class ExpectedReturn(BaseModel):
    """Growth from leaving pending expenses invested for the whole horizon."""

    projected_value: Decimal = Decimal("0.00")
    extra_growth: Decimal = Decimal("0.00")


class DashboardStats(BaseModel):
    total_expenses: Decimal
    total_reimbursed: Decimal
    pending_reimbursement: Decimal
    expense_count: int
    by_account: AccountTotals
    audit_readiness: AuditReadiness
    retention_alerts: int = Field(
        ...,
        description="Expenses whose tax year is near or past the retention window"
    )
    expected_return: ExpectedReturn


# =============================================================================
# TAX YEAR SUMMARY
# =============================================================================

class CategoryBreakdown(BaseModel):
    category: ExpenseCategory
    count: int
    total: Decimal
    reimbursed: Decimal
    pending: Decimal


class TaxYearSummary(BaseModel):
    year: int
    expenses: list[Expense]
    total: Decimal
    reimbursed: Decimal
    pending: Decimal
    audit_ready: int
    audit_missing: int
    by_category: list[CategoryBreakdown]
    by_account: AccountTotals


# =============================================================================
# REIMBURSEMENT OPTIMIZER
# =============================================================================

class AnalyzedExpense(BaseModel):
    """Growth outlook for one unreimbursed expense."""

    expense: Expense
    years_invested: float
    remaining_years: float
    current_value: float
    future_value: float
    potential_growth: float
    growth_percent: float


class OptimizerReport(BaseModel):
    items: list[AnalyzedExpense] = Field(default_factory=list)
    total_pending: float = 0.0
    total_current_value: float = 0.0
    total_future_value: float = 0.0
    total_potential_growth: float = 0.0
    insights: list[str] = Field(default_factory=list)


# =============================================================================
# EMAIL DIGEST
# =============================================================================

class DigestExpenseLine(BaseModel):
    description: str
    amount: Decimal
    date: str = Field(..., description="Short display date, e.g. 'Jan 5'")


class DigestSummary(BaseModel):
    """Everything the digest email shows for one user and period."""

    first_name: str
    period_label: str
    hsa_balance: float
    total_expenses: Decimal
    pending_reimbursement: Decimal
    new_expense_count: int
    reimbursed_this_period: Decimal
    projected_growth: Decimal
    time_horizon: int
    annual_return: float
    audit_ready_pct: int
    top_expenses: list[DigestExpenseLine] = Field(default_factory=list, max_length=5)
