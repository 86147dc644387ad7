"""
Data Models Package

This package contains all Pydantic models used in HSA Tracker.
All data flowing through the system must conform to these schemas.
"""

from hsa_tracker.models.expense import (
    DOCUMENT_FIELDS,
    AccountType,
    ClaimType,
    DocumentKind,
    Expense,
    ExpenseCategory,
    ExpenseInput,
    PatientRelationship,
    RetentionStatus,
    ValidationIssue,
    ValidationResult,
)
from hsa_tracker.models.profile import (
    DEFAULT_PROJECTION_PARAMETERS,
    CoverageType,
    DigestFrequency,
    Profile,
    ProjectionParameters,
    parameters_for,
)
from hsa_tracker.models.stats import (
    AccountTotals,
    AnalyzedExpense,
    AuditReadiness,
    CategoryBreakdown,
    DashboardStats,
    DigestExpenseLine,
    DigestSummary,
    ExpectedReturn,
    OptimizerReport,
    Projection,
    ProjectionPoint,
    ProjectionSummary,
    ScenarioResult,
    TaxYearSummary,
)
from hsa_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "DOCUMENT_FIELDS",
    "AccountType",
    "ClaimType",
    "DocumentKind",
    "Expense",
    "ExpenseCategory",
    "ExpenseInput",
    "PatientRelationship",
    "RetentionStatus",
    "ValidationIssue",
    "ValidationResult",
    # Profile models
    "DEFAULT_PROJECTION_PARAMETERS",
    "CoverageType",
    "DigestFrequency",
    "Profile",
    "ProjectionParameters",
    "parameters_for",
    # Derived results
    "AccountTotals",
    "AnalyzedExpense",
    "AuditReadiness",
    "CategoryBreakdown",
    "DashboardStats",
    "DigestExpenseLine",
    "DigestSummary",
    "ExpectedReturn",
    "OptimizerReport",
    "Projection",
    "ProjectionPoint",
    "ProjectionSummary",
    "ScenarioResult",
    "TaxYearSummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
