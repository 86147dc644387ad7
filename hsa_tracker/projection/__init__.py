"""Savings projection package."""

from hsa_tracker.projection.engine import (
    CAPITAL_GAINS_RATE,
    compare_scenarios,
    project_savings,
    round_whole,
)

__all__ = [
    "CAPITAL_GAINS_RATE",
    "compare_scenarios",
    "project_savings",
    "round_whole",
]
