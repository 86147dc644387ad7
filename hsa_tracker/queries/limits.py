"""
IRS HSA Contribution Limits

Published annual limits by coverage tier, plus the age-55 catch-up amount.
"""

from datetime import date
from typing import NamedTuple, Optional

from hsa_tracker.models.profile import CoverageType


class ContributionLimits(NamedTuple):
    individual: int
    family: int
    catch_up_55: int


HSA_LIMITS: dict[int, ContributionLimits] = {
    2024: ContributionLimits(individual=4_150, family=8_300, catch_up_55=1_000),
    2025: ContributionLimits(individual=4_300, family=8_550, catch_up_55=1_000),
    2026: ContributionLimits(individual=4_400, family=8_750, catch_up_55=1_000),
}

CATCH_UP_AGE = 55

FEDERAL_TAX_BRACKETS = [10, 12, 22, 24, 32, 35, 37]


def limits_for_year(year: int) -> ContributionLimits:
    """Limits for a year; years we don't have yet use the newest table."""
    return HSA_LIMITS.get(year, HSA_LIMITS[max(HSA_LIMITS)])


def age_on(date_of_birth: date, today: date) -> int:
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def is_catch_up_eligible(
    date_of_birth: Optional[date],
    today: Optional[date] = None,
) -> bool:
    if date_of_birth is None:
        return False
    return age_on(date_of_birth, today or date.today()) >= CATCH_UP_AGE


def get_contribution_limit(
    coverage_type: CoverageType,
    date_of_birth: Optional[date] = None,
    today: Optional[date] = None,
) -> int:
    """Maximum the user may contribute this year."""
    today = today or date.today()
    limits = limits_for_year(today.year)
    maximum = limits.family if coverage_type == CoverageType.FAMILY else limits.individual
    if is_catch_up_eligible(date_of_birth, today):
        maximum += limits.catch_up_55
    return maximum
