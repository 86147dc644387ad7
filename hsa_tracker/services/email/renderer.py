"""
Digest Email Renderer

Turns a DigestSummary into the HTML body of the periodic digest email.
The markup lives in templates/digest.html and is rendered with Jinja2.
No network, no settings lookups beyond the app URL passed in.

Autoescaping is on, so user-supplied text (names, expense descriptions)
is always HTML-escaped. Money is shown in whole dollars.
"""

from jinja2 import Environment, PackageLoader, select_autoescape

from hsa_tracker.models.stats import DigestSummary
from hsa_tracker.queries.formatting import format_currency


# Audit readiness at or above this shows green, below it amber
AUDIT_READY_GOOD_PCT = 80

BRAND_GRADIENT = "linear-gradient(135deg, #059669, #34d399)"

_LABEL_STYLE = (
    "font-size:11px;color:#94A3B8;margin:0 0 4px;"
    "text-transform:uppercase;letter-spacing:0.5px"
)
_SECTION_STYLE = (
    "font-size:12px;font-weight:600;color:#64748B;margin:0 0 12px;"
    "text-transform:uppercase;letter-spacing:0.5px"
)


def digest_subject(period_label: str) -> str:
    return f"Your HSA Plus {period_label} Summary"


def create_environment() -> Environment:
    """Jinja environment for the email templates shipped with this package."""
    env = Environment(
        loader=PackageLoader("hsa_tracker.services.email", "templates"),
        autoescape=select_autoescape(["html"]),
    )
    env.filters["currency"] = format_currency
    env.globals.update(
        brand_gradient=BRAND_GRADIENT,
        label_style=_LABEL_STYLE,
        section_style=_SECTION_STYLE,
    )
    return env


class DigestEmailRenderer:
    """Renders digest HTML for one user and period."""

    def __init__(self, app_url: str = "https://hsaplus.app", env: Environment = None):
        self._app_url = app_url.rstrip("/")
        self._template = (env or create_environment()).get_template("digest.html")

    def render(self, summary: DigestSummary) -> str:
        audit_color = (
            "#059669" if summary.audit_ready_pct >= AUDIT_READY_GOOD_PCT else "#f59e0b"
        )
        return self._template.render(
            summary=summary,
            audit_color=audit_color,
            dashboard_url=self._app_url,
            profile_url=f"{self._app_url}/dashboard/profile",
        )
