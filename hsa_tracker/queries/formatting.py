"""Display formatting shared by the UI and the email digest."""

from datetime import date

from hsa_tracker.projection import round_whole


def format_currency(value) -> str:
    """Whole-dollar display: 12345.6 -> '$12,346'."""
    return f"${round_whole(float(value)):,}"


def format_money(value) -> str:
    """Cent-precision display: 12345.6 -> '$12,345.60'."""
    return f"${float(value):,.2f}"


def short_date(value: date) -> str:
    """'Jan 5' style label."""
    return f"{value.strftime('%b')} {value.day}"
