"""Tests for dashboard stats, tax year summaries, the optimizer and limits."""

import csv
import io
from datetime import date
from decimal import Decimal

import pytest

from hsa_tracker.models.expense import AccountType, Expense, ExpenseCategory
from hsa_tracker.models.profile import CoverageType, ProjectionParameters
from hsa_tracker.queries import (
    HSA_LIMITS,
    calculate_expected_return,
    compute_dashboard_stats,
    get_contribution_limit,
    is_catch_up_eligible,
    optimize_reimbursements,
    summarize_tax_years,
    tax_year_csv,
)
from hsa_tracker.queries.formatting import format_currency, format_money, short_date
from hsa_tracker.queries.stats import reimbursed_value, total_reimbursed
from tests.fakes import make_expense


@pytest.fixture
def expenses():
    return [
        make_expense(
            description="Eye exam",
            amount=Decimal("100.00"),
            date_of_service=date(2026, 3, 10),
            receipt_urls=["r"],
            eob_urls=["e"],
        ),
        make_expense(
            description="Braces",
            amount=Decimal("200.00"),
            date_of_service=date(2026, 2, 1),
            account_type=AccountType.LPFSA,
            category=ExpenseCategory.DENTAL,
            reimbursed=True,
            reimbursed_amount=Decimal("150.00"),
            reimbursed_date=date(2026, 4, 1),
        ),
        # Legacy row flagged reimbursed without an amount
        Expense.from_record({
            "user_id": "user-1",
            "description": "Glasses",
            "amount": Decimal("50.00"),
            "date_of_service": date(2026, 1, 15),
            "account_type": AccountType.HCFSA,
            "category": ExpenseCategory.VISION,
            "reimbursed": True,
        }),
        make_expense(
            description="Old prescription",
            amount=Decimal("25.00"),
            date_of_service=date(2019, 6, 1),
            account_type=None,
            category=ExpenseCategory.PRESCRIPTION,
        ),
    ]


class TestReimbursedValue:

    def test_uses_reimbursed_amount(self, expenses):
        assert reimbursed_value(expenses[1]) == Decimal("150.00")

    def test_falls_back_to_amount(self, expenses):
        assert reimbursed_value(expenses[2]) == Decimal("50.00")

    def test_total_reimbursed(self, expenses):
        assert total_reimbursed(expenses) == Decimal("200.00")


class TestDashboardStats:
    """Tests for compute_dashboard_stats."""

    def test_totals(self, expenses):
        stats = compute_dashboard_stats(expenses, current_year=2026)
        assert stats.total_expenses == Decimal("375.00")
        assert stats.total_reimbursed == Decimal("200.00")
        assert stats.pending_reimbursement == Decimal("175.00")
        assert stats.expense_count == 4

    def test_by_account_skips_unknown(self, expenses):
        stats = compute_dashboard_stats(expenses, current_year=2026)
        assert stats.by_account.hsa == Decimal("100.00")
        assert stats.by_account.lpfsa == Decimal("200.00")
        assert stats.by_account.hcfsa == Decimal("50.00")

    def test_audit_readiness(self, expenses):
        readiness = compute_dashboard_stats(expenses, current_year=2026).audit_readiness
        assert (readiness.total, readiness.ready, readiness.missing) == (4, 1, 3)
        assert readiness.ready_pct == 25

    def test_retention_alerts(self, expenses):
        assert compute_dashboard_stats(expenses, current_year=2026).retention_alerts == 1

    def test_expected_return_uses_params(self, expenses):
        stats = compute_dashboard_stats(
            expenses,
            params=ProjectionParameters(annual_return_pct=7.0, time_horizon_years=20),
            current_year=2026,
        )
        # (100 + 25) * 1.07 ** 20
        assert stats.expected_return.projected_value == Decimal("483.71")
        assert stats.expected_return.extra_growth == Decimal("358.71")

    def test_empty(self):
        stats = compute_dashboard_stats([], current_year=2026)
        assert stats.total_expenses == Decimal("0")
        assert stats.audit_readiness.ready_pct == 100
        assert stats.expected_return.extra_growth == Decimal("0.00")

    def test_pending_and_partially_reimbursed(self):
        """Test one pending expense next to a stored, partially reimbursed one."""
        records = [
            Expense.from_record({
                "amount": Decimal("100"),
                "reimbursed": False,
                "date_of_service": date(2024, 1, 1),
            }),
            Expense.from_record({
                "amount": Decimal("50"),
                "reimbursed": True,
                "reimbursed_amount": Decimal("40"),
                "date_of_service": date(2023, 6, 1),
            }),
        ]

        stats = compute_dashboard_stats(records, current_year=2026)

        assert stats.total_expenses == Decimal("150")
        assert stats.total_reimbursed == Decimal("40")
        assert stats.pending_reimbursement == Decimal("110")

    def test_same_input_same_stats(self, expenses):
        first = compute_dashboard_stats(expenses, current_year=2026)
        second = compute_dashboard_stats(list(expenses), current_year=2026)
        assert first == second
        assert first.model_dump() == second.model_dump()


class TestExpectedReturn:

    def test_compounds_once_over_horizon(self):
        result = calculate_expected_return([make_expense(amount=Decimal("1000.00"))], 7, 20)
        assert result.projected_value == Decimal("3869.68")
        assert result.extra_growth == Decimal("2869.68")

    def test_one_year_at_seven_percent(self):
        result = calculate_expected_return([make_expense(amount=Decimal("1000.00"))], 7, 1)
        assert result.projected_value == Decimal("1070.00")
        assert result.extra_growth == Decimal("70.00")

    def test_zero_horizon_has_no_growth(self):
        result = calculate_expected_return([make_expense(amount=Decimal("1000.00"))], 7, 0)
        assert result.projected_value == Decimal("1000.00")
        assert result.extra_growth == Decimal("0.00")

    def test_ready_pct_rounds_half_up(self):
        from hsa_tracker.models.stats import AuditReadiness

        assert AuditReadiness(total=8, ready=1, missing=7).ready_pct == 13
        assert AuditReadiness(total=3, ready=2, missing=1).ready_pct == 67


class TestTaxYearSummary:
    """Tests for summarize_tax_years and the CSV export."""

    def test_newest_year_first(self, expenses):
        summaries = summarize_tax_years(expenses)
        assert [s.year for s in summaries] == [2026, 2019]

    def test_year_totals(self, expenses):
        summary = summarize_tax_years(expenses)[0]
        assert summary.total == Decimal("350.00")
        assert summary.reimbursed == Decimal("200.00")
        assert summary.pending == Decimal("150.00")
        assert (summary.audit_ready, summary.audit_missing) == (1, 2)
        # Sorted by service date within the year
        assert [e.description for e in summary.expenses] == ["Glasses", "Braces", "Eye exam"]

    def test_category_breakdown_largest_first(self, expenses):
        breakdown = summarize_tax_years(expenses)[0].by_category
        assert [b.category for b in breakdown] == [
            ExpenseCategory.DENTAL,
            ExpenseCategory.MEDICAL,
            ExpenseCategory.VISION,
        ]
        dental = breakdown[0]
        assert (dental.count, dental.reimbursed, dental.pending) == (
            1, Decimal("150.00"), Decimal("0"),
        )

    def test_groups_by_explicit_tax_year(self):
        summaries = summarize_tax_years([
            make_expense(date_of_service=date(2025, 12, 30), tax_year=2026),
            make_expense(date_of_service=date(2026, 1, 2)),
        ])
        assert len(summaries) == 1
        assert summaries[0].year == 2026

    def test_csv(self, expenses):
        summary = summarize_tax_years(expenses)[0]
        rows = list(csv.reader(io.StringIO(tax_year_csv(summary))))

        assert rows[0][0] == "Date of Service"
        assert rows[1][:2] == ["2026-01-15", "Glasses"]
        braces = rows[2]
        assert braces[6] == "LPFSA"
        assert braces[7] == "200.00"
        assert braces[8] == "Yes"
        assert braces[9] == "150.00"
        assert braces[10] == "2026-04-01"
        assert rows[3][11] == "Yes"
        assert ["Tax Year 2026 Summary"] in rows
        assert ["Category", "Count", "Total"] in rows
        assert ["Dental", "1", "200.00"] in rows

    def test_empty(self):
        assert summarize_tax_years([]) == []


class TestOptimizer:
    """Tests for the reimbursement optimizer."""

    def test_skips_reimbursed(self, expenses):
        report = optimize_reimbursements(expenses, 7, 20, today=date(2026, 10, 18))
        assert {i.expense.description for i in report.items} == {"Eye exam", "Old prescription"}

    def test_expense_from_today(self):
        today = date(2026, 10, 18)
        report = optimize_reimbursements(
            [make_expense(amount=Decimal("1000.00"), date_of_service=today)],
            7,
            20,
            today=today,
        )
        item = report.items[0]
        assert item.years_invested == 0
        assert item.remaining_years == 20
        assert item.current_value == pytest.approx(1000.0)
        assert item.future_value == pytest.approx(3869.68, abs=0.01)
        assert item.growth_percent == pytest.approx(286.97, abs=0.01)
        assert report.total_pending == pytest.approx(1000.0)

    def test_biggest_growth_first(self):
        today = date(2026, 10, 18)
        report = optimize_reimbursements(
            [
                make_expense(description="Small", amount=Decimal("10.00"), date_of_service=today),
                make_expense(description="Large", amount=Decimal("900.00"), date_of_service=today),
            ],
            7,
            20,
            today=today,
        )
        assert [i.expense.description for i in report.items] == ["Large", "Small"]

    def test_insights(self):
        today = date(2026, 10, 18)
        report = optimize_reimbursements(
            [make_expense(description="Surgery", amount=Decimal("1000.00"), date_of_service=today)],
            7,
            20,
            today=today,
        )
        assert report.insights[0].startswith("Delaying reimbursement could earn $2,870")
        assert "Surgery" in report.insights[1]

    def test_no_pending_expenses(self):
        report = optimize_reimbursements([], 7, 20)
        assert report.items == []
        assert report.insights == [
            "No unreimbursed expenses yet. Track expenses to see reimbursement strategies."
        ]

    def test_small_expenses_get_summary_tip(self):
        today = date(2026, 10, 18)
        report = optimize_reimbursements(
            [make_expense(amount=Decimal("20.00"), date_of_service=today)], 7, 20, today=today
        )
        assert report.insights == [
            "Your 1 unreimbursed expense totaling $20 could grow to $77 over 20 years."
        ]


class TestContributionLimits:

    def test_individual_and_family(self):
        today = date(2026, 6, 1)
        assert get_contribution_limit(CoverageType.INDIVIDUAL, today=today) == 4400
        assert get_contribution_limit(CoverageType.FAMILY, today=today) == 8750

    def test_catch_up_at_55(self):
        today = date(2026, 10, 18)
        assert is_catch_up_eligible(date(1971, 10, 18), today) is True
        assert is_catch_up_eligible(date(1971, 10, 19), today) is False
        assert is_catch_up_eligible(None, today) is False
        assert get_contribution_limit(
            CoverageType.INDIVIDUAL, date(1960, 1, 1), today
        ) == 5400

    def test_unknown_year_uses_newest_table(self):
        newest = HSA_LIMITS[max(HSA_LIMITS)]
        assert get_contribution_limit(
            CoverageType.INDIVIDUAL, today=date(2031, 1, 1)
        ) == newest.individual


class TestFormatting:

    def test_format_currency(self):
        assert format_currency(12345.6) == "$12,346"
        assert format_currency(Decimal("0.5")) == "$1"

    def test_format_money(self):
        assert format_money(Decimal("12345.6")) == "$12,345.60"

    def test_short_date(self):
        assert short_date(date(2026, 1, 5)) == "Jan 5"
