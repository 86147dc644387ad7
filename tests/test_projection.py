"""Tests for the growth projection engine."""

import pytest

from hsa_tracker.models.profile import ProjectionParameters
from hsa_tracker.projection import compare_scenarios, project_savings, round_whole


def params(**overrides) -> ProjectionParameters:
    data = {
        "initial_balance": 0.0,
        "annual_contribution": 1000.0,
        "annual_return_pct": 10.0,
        "time_horizon_years": 2,
        "federal_tax_pct": 20.0,
        "state_tax_pct": 5.0,
    }
    data.update(overrides)
    return ProjectionParameters(**data)


class TestRoundWhole:
    """Half-up rounding to whole dollars."""

    @pytest.mark.parametrize("value,expected", [
        (2.5, 3),
        (2.4999, 2),
        (-2.5, -2),
        (0.0, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_whole(value) == expected


class TestProjectSavings:
    """Tests for the year-by-year simulation."""

    def test_one_point_per_year_including_year_zero(self):
        projection = project_savings(params(time_horizon_years=5), start_year=2026)
        assert len(projection.points) == 6
        assert projection.points[0].label == "2026"
        assert projection.points[-1].label == "2031"

    def test_snapshot_before_growth(self):
        """Test that year 0 is today's balance and contributions compound a year later."""
        projection = project_savings(params(), start_year=2026)
        y0, y1, y2 = projection.points

        assert (y0.balance, y0.total_contributions, y0.tax_savings_cumulative) == (0, 0, 0)
        assert y1.balance == 1000
        assert y1.total_growth == 0
        assert y1.tax_savings_cumulative == 250
        assert y2.balance == 2100
        assert y2.total_contributions == 2000
        assert y2.total_growth == 100
        assert y2.tax_savings_cumulative == 500

    def test_taxable_equivalent(self):
        """Test the taxable account pays tax on contributions and on growth."""
        projection = project_savings(params(), start_year=2026)
        assert projection.points[1].taxable_equivalent == 750
        # 750 + 750 * 0.10 * 0.85 + 750 = 1563.75
        assert projection.points[2].taxable_equivalent == 1564

    def test_summary_matches_last_point(self):
        projection = project_savings(params(), start_year=2026)
        last = projection.points[-1]
        summary = projection.summary

        assert summary.projected_balance == last.balance
        assert summary.total_contributed == last.total_contributions
        assert summary.total_growth == last.total_growth
        assert summary.total_tax_savings == last.tax_savings_cumulative
        assert summary.hsa_advantage == 2100 - 1564

    def test_initial_balance_grows(self):
        projection = project_savings(
            params(initial_balance=10000.0, annual_contribution=0.0, time_horizon_years=1),
            start_year=2026,
        )
        assert projection.points[0].balance == 10000
        assert projection.points[0].total_contributions == 10000
        assert projection.points[1].balance == 11000
        assert projection.points[1].total_growth == 1000

    def test_initial_balance_compounds_every_year(self):
        projection = project_savings(
            params(initial_balance=5000.0, annual_contribution=0.0,
                   annual_return_pct=6.0, time_horizon_years=25),
            start_year=2026,
        )
        for point in projection.points:
            assert point.balance == round_whole(5000.0 * 1.06 ** point.year)

    def test_negative_return_still_compounds(self):
        projection = project_savings(
            params(initial_balance=10000.0, annual_contribution=0.0,
                   annual_return_pct=-10.0, time_horizon_years=3),
            start_year=2026,
        )
        assert [p.balance for p in projection.points] == [10000, 9000, 8100, 7290]
        assert projection.points[-1].total_growth == -2710

    def test_growth_is_balance_minus_contributions(self):
        """Test that the rounded columns add up on every row."""
        projection = project_savings(
            params(initial_balance=1000.4, annual_contribution=4150.3,
                   annual_return_pct=7.0, time_horizon_years=30),
            start_year=2026,
        )
        for point in projection.points:
            assert point.total_growth == point.balance - point.total_contributions
        assert projection.summary.total_growth == (
            projection.summary.projected_balance - projection.summary.total_contributed
        )

    def test_contribution_increase(self):
        """Test that contributions step up by the yearly increase."""
        projection = project_savings(
            params(annual_return_pct=0.0, contribution_increase_pct=10.0, time_horizon_years=3),
            start_year=2026,
        )
        # 1000 + 1100 + 1210
        assert projection.points[3].total_contributions == 3310
        assert projection.points[3].balance == 3310

    def test_zero_horizon(self):
        projection = project_savings(params(time_horizon_years=0), start_year=2026)
        assert len(projection.points) == 1
        assert projection.summary.projected_balance == 0

    def test_negative_horizon_treated_as_zero(self):
        projection = project_savings(params(time_horizon_years=-3), start_year=2026)
        assert len(projection.points) == 1

    def test_zero_return_has_no_growth(self):
        projection = project_savings(
            params(annual_return_pct=0.0, time_horizon_years=10), start_year=2026
        )
        assert all(p.total_growth == 0 for p in projection.points)


class TestCompareScenarios:
    """Tests for side-by-side scenarios."""

    def test_deltas_against_first_scenario(self):
        base = params(time_horizon_years=10)
        results = compare_scenarios(
            [
                ("Base", base),
                ("Higher return", base.model_copy(update={"annual_return_pct": 12.0})),
                ("Lower return", base.model_copy(update={"annual_return_pct": 4.0})),
            ],
            start_year=2026,
        )

        assert [r.name for r in results] == ["Base", "Higher return", "Lower return"]
        assert results[0].balance_delta == 0
        assert results[1].balance_delta > 0
        assert results[2].balance_delta < 0
        assert results[1].balance_delta == (
            results[1].summary.projected_balance - results[0].summary.projected_balance
        )

    def test_empty(self):
        assert compare_scenarios([]) == []
