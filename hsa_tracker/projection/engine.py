"""
HSA Growth Projection Engine

Simulates the account year by year under two regimes:
1. HSA: pre-tax contributions, tax-free growth
2. Taxable brokerage: after-tax contributions, growth taxed every year at
   long-term capital gains rates

ORDERING MATTERS: each year records a snapshot of the current balance and only
then applies growth and the next contribution. Year 0 is today's balance with
no growth, and a contribution first compounds the year after it is added.

Balances are accumulated at full float precision and rounded to whole
dollars only when a point is emitted.
"""

import math
from datetime import date
from typing import Optional, Sequence

from hsa_tracker.models.profile import ProjectionParameters
from hsa_tracker.models.stats import (
    Projection,
    ProjectionPoint,
    ProjectionSummary,
    ScenarioResult,
)


# Long-term capital gains rate applied to taxable-account growth
CAPITAL_GAINS_RATE = 0.15


def round_whole(value: float) -> int:
    """Round half up to a whole dollar (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def _contribution_in_year(annual: float, increase: float, year: int) -> float:
    """Contribution added at the end of year `year` (0-indexed)."""
    if increase == 0:
        return annual
    return annual * (1 + increase) ** year


def _contributed_through(annual: float, increase: float, years: int) -> float:
    """Sum of the first `years` contributions."""
    if increase == 0:
        return annual * years
    return annual * ((1 + increase) ** years - 1) / increase


def project_savings(
    params: ProjectionParameters,
    start_year: Optional[int] = None,
) -> Projection:
    """
    Project balances for years 0 through time_horizon_years inclusive.

    A negative horizon is treated as zero so the result always holds at
    least the year-0 point.
    """
    if start_year is None:
        start_year = date.today().year

    rate = params.annual_return_pct / 100
    increase = params.contribution_increase_pct / 100
    combined_tax_rate = params.combined_tax_rate
    horizon = max(0, int(params.time_horizon_years))

    balance = params.initial_balance
    taxable_balance = params.initial_balance

    points: list[ProjectionPoint] = []
    for year in range(horizon + 1):
        contributed = _contributed_through(params.annual_contribution, increase, year)
        total_contributions = params.initial_balance + contributed
        tax_savings = contributed * combined_tax_rate
        shown_balance = round_whole(balance)
        shown_contributions = round_whole(total_contributions)

        points.append(ProjectionPoint(
            year=year,
            label=str(start_year + year),
            balance=shown_balance,
            total_contributions=shown_contributions,
            # Difference of the rounded figures so the columns always add up
            total_growth=shown_balance - shown_contributions,
            tax_savings_cumulative=round_whole(tax_savings),
            taxable_equivalent=round_whole(taxable_balance),
        ))

        # Grow into next year
        contribution = _contribution_in_year(params.annual_contribution, increase, year)
        balance = balance * (1 + rate) + contribution

        taxable_contribution = contribution * (1 - combined_tax_rate)
        after_tax_growth = taxable_balance * rate * (1 - CAPITAL_GAINS_RATE)
        taxable_balance = taxable_balance + after_tax_growth + taxable_contribution

    last = points[-1]
    summary = ProjectionSummary(
        projected_balance=last.balance,
        total_contributed=last.total_contributions,
        total_growth=last.total_growth,
        total_tax_savings=last.tax_savings_cumulative,
        hsa_advantage=last.balance - last.taxable_equivalent,
    )
    return Projection(points=points, summary=summary)


def compare_scenarios(
    scenarios: Sequence[tuple[str, ProjectionParameters]],
    start_year: Optional[int] = None,
) -> list[ScenarioResult]:
    """
    Run the engine for several named parameter sets.

    Deltas are measured against the first scenario, which acts as the baseline.
    """
    results: list[ScenarioResult] = []
    baseline: Optional[int] = None

    for name, params in scenarios:
        summary = project_savings(params, start_year=start_year).summary
        if baseline is None:
            baseline = summary.projected_balance
        results.append(ScenarioResult(
            name=name,
            parameters=params,
            summary=summary,
            balance_delta=summary.projected_balance - baseline,
        ))

    return results
