"""Aggregation and reporting package."""

from hsa_tracker.queries.limits import (
    HSA_LIMITS,
    ContributionLimits,
    get_contribution_limit,
    is_catch_up_eligible,
)
from hsa_tracker.queries.optimizer import analyze_expense, optimize_reimbursements
from hsa_tracker.queries.stats import (
    calculate_expected_return,
    compute_dashboard_stats,
)
from hsa_tracker.queries.tax_summary import summarize_tax_years, tax_year_csv

__all__ = [
    "HSA_LIMITS",
    "ContributionLimits",
    "analyze_expense",
    "calculate_expected_return",
    "compute_dashboard_stats",
    "get_contribution_limit",
    "is_catch_up_eligible",
    "optimize_reimbursements",
    "summarize_tax_years",
    "tax_year_csv",
]
