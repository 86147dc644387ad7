"""
Profile and Projection Parameter Models

A Profile is the per-user settings row. ProjectionParameters is the small,
immutable bundle of financial assumptions the projection engine runs on.

DESIGN DECISION: ProjectionParameters is frozen and passed into every engine
call. There is no shared, mutable "default inputs" object anywhere; the
defaults live on the model fields themselves.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DigestFrequency(str, Enum):
    """How often a user wants the email digest."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class CoverageType(str, Enum):
    """HDHP coverage tier, which sets the contribution limit."""
    INDIVIDUAL = "individual"
    FAMILY = "family"


class ProjectionParameters(BaseModel):
    """
    Financial assumptions for the projection engine.

    All percentages are whole-number percentages (7 means 7%).
    Values are not range-checked: callers default them, they don't validate them.
    """
    model_config = ConfigDict(frozen=True)

    initial_balance: float = Field(
        default=0.0,
        description="Starting account balance"
    )
    annual_contribution: float = Field(
        default=4150.0,
        description="Amount contributed each year"
    )
    annual_return_pct: float = Field(
        default=7.0,
        description="Expected annual rate of return, percent"
    )
    time_horizon_years: int = Field(
        default=20,
        description="Number of years to project"
    )
    federal_tax_pct: float = Field(
        default=22.0,
        description="Federal marginal tax bracket, percent"
    )
    state_tax_pct: float = Field(
        default=5.0,
        description="State income tax rate, percent"
    )
    contribution_increase_pct: float = Field(
        default=0.0,
        description="Yearly percent increase applied to the contribution"
    )

    @property
    def combined_tax_rate(self) -> float:
        """Federal plus state rate as a fraction."""
        return (self.federal_tax_pct + self.state_tax_pct) / 100


DEFAULT_PROJECTION_PARAMETERS = ProjectionParameters()


class Profile(BaseModel):
    """
    Per-user settings.

    Financial fields are optional: a user who skipped onboarding still gets a
    projection built from the defaults.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Owner identity (same value as Expense.user_id)"
    )
    email: str = Field(default="", max_length=320)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    date_of_birth: Optional[date] = None
    coverage_type: CoverageType = CoverageType.INDIVIDUAL

    # Projection assumptions
    current_hsa_balance: Optional[float] = None
    annual_contribution: Optional[float] = None
    expected_annual_return: Optional[float] = None
    time_horizon_years: Optional[int] = None
    federal_tax_bracket: Optional[float] = None
    state_tax_rate: Optional[float] = None

    # Email digest
    email_digest_enabled: bool = False
    email_digest_frequency: DigestFrequency = DigestFrequency.MONTHLY

    # Bank link
    plaid_access_token: Optional[str] = None
    plaid_account_id: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return self.first_name or "there"

    @property
    def bank_linked(self) -> bool:
        return bool(self.plaid_access_token)

    def projection_parameters(self) -> ProjectionParameters:
        """Build engine parameters, filling gaps with the defaults."""
        defaults = DEFAULT_PROJECTION_PARAMETERS

        def pick(value, default):
            return default if value is None else value

        return ProjectionParameters(
            initial_balance=pick(self.current_hsa_balance, defaults.initial_balance),
            annual_contribution=pick(self.annual_contribution, defaults.annual_contribution),
            annual_return_pct=pick(self.expected_annual_return, defaults.annual_return_pct),
            time_horizon_years=pick(self.time_horizon_years, defaults.time_horizon_years),
            federal_tax_pct=pick(self.federal_tax_bracket, defaults.federal_tax_pct),
            state_tax_pct=pick(self.state_tax_rate, defaults.state_tax_pct),
        )


def parameters_for(profile: Optional[Profile]) -> ProjectionParameters:
    """Projection parameters for a profile, or the defaults when there is none."""
    if profile is None:
        return DEFAULT_PROJECTION_PARAMETERS
    return profile.projection_parameters()
