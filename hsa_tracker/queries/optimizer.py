"""
Reimbursement Optimizer

Shows what each unreimbursed expense is worth if the user keeps delaying
reimbursement and leaves the money invested in the HSA.

Each pending amount is treated as if it had been invested on its service
date. Current value is what it has grown to so far. Future value is what it
reaches at the end of the user's horizon.
"""

from datetime import date
from typing import Iterable, Optional

from hsa_tracker.models.expense import Expense
from hsa_tracker.models.stats import AnalyzedExpense, OptimizerReport
from hsa_tracker.projection import round_whole
from hsa_tracker.queries.formatting import format_currency


DAYS_PER_YEAR = 365.25

# Only mention total potential growth once it's worth talking about
GROWTH_INSIGHT_THRESHOLD = 500.0
BIG_TICKET_AMOUNT = 1000.0
SEASONED_YEARS = 3.0


def analyze_expense(
    expense: Expense,
    annual_return_pct: float,
    time_horizon_years: int,
    today: Optional[date] = None,
) -> AnalyzedExpense:
    today = today or date.today()
    rate = annual_return_pct / 100
    amount = float(expense.amount)

    years_invested = max(0.0, (today - expense.date_of_service).days / DAYS_PER_YEAR)
    remaining_years = max(0.0, time_horizon_years - years_invested)

    current_value = amount * (1 + rate) ** years_invested
    future_value = amount * (1 + rate) ** time_horizon_years
    potential_growth = future_value - current_value
    growth_percent = (
        potential_growth / current_value * 100 if current_value > 0 else 0.0
    )

    return AnalyzedExpense(
        expense=expense,
        years_invested=years_invested,
        remaining_years=remaining_years,
        current_value=current_value,
        future_value=future_value,
        potential_growth=potential_growth,
        growth_percent=growth_percent,
    )


def _insights(report: OptimizerReport, time_horizon_years: int) -> list[str]:
    items = report.items
    if not items:
        return [
            "No unreimbursed expenses yet. Track expenses to see reimbursement strategies."
        ]

    tips = []
    avg_years_invested = sum(a.years_invested for a in items) / len(items)

    if report.total_potential_growth > GROWTH_INSIGHT_THRESHOLD:
        remaining = round_whole(time_horizon_years - avg_years_invested)
        tips.append(
            f"Delaying reimbursement could earn {format_currency(report.total_potential_growth)} "
            f"more in tax-free growth over the remaining {remaining} years."
        )

    big_ticket = next(
        (a for a in items if float(a.expense.amount) >= BIG_TICKET_AMOUNT), None
    )
    if big_ticket:
        tips.append(
            f"Your largest unreimbursed expense ({format_currency(big_ticket.expense.amount)}, "
            f"{big_ticket.expense.description}) could grow to "
            f"{format_currency(big_ticket.future_value)} by year {time_horizon_years}."
        )

    seasoned = next((a for a in items if a.years_invested >= SEASONED_YEARS), None)
    if seasoned:
        already = seasoned.current_value - float(seasoned.expense.amount)
        tips.append(
            f'"{seasoned.expense.description}" has been invested for '
            f"{seasoned.years_invested:.1f} years and has already grown by "
            f"{format_currency(already)}."
        )

    if not tips:
        plural = "s" if len(items) != 1 else ""
        tips.append(
            f"Your {len(items)} unreimbursed expense{plural} totaling "
            f"{format_currency(report.total_pending)} could grow to "
            f"{format_currency(report.total_future_value)} over {time_horizon_years} years."
        )

    return tips


def optimize_reimbursements(
    expenses: Iterable[Expense],
    annual_return_pct: float,
    time_horizon_years: int,
    today: Optional[date] = None,
) -> OptimizerReport:
    """Analyze every unreimbursed expense, biggest growth opportunity first."""
    items = [
        analyze_expense(e, annual_return_pct, time_horizon_years, today)
        for e in expenses
        if not e.reimbursed
    ]
    items.sort(key=lambda a: a.potential_growth, reverse=True)

    report = OptimizerReport(
        items=items,
        total_pending=sum(float(a.expense.amount) for a in items),
        total_current_value=sum(a.current_value for a in items),
        total_future_value=sum(a.future_value for a in items),
        total_potential_growth=sum(a.potential_growth for a in items),
    )
    report.insights = _insights(report, time_horizon_years)
    return report
