"""IRS recordkeeping rules package."""

from hsa_tracker.compliance.rules import (
    RETENTION_WARNING_LEAD_YEARS,
    RETENTION_YEARS,
    UNPROVEN_PENALTY_RATE,
    get_retention_status,
    is_audit_ready,
    missing_documents,
    needs_retention_alert,
    unproven_penalty,
)

__all__ = [
    "RETENTION_WARNING_LEAD_YEARS",
    "RETENTION_YEARS",
    "UNPROVEN_PENALTY_RATE",
    "get_retention_status",
    "is_audit_ready",
    "missing_documents",
    "needs_retention_alert",
    "unproven_penalty",
]
