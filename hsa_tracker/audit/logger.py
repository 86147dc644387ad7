"""
Audit Logger

DESIGN DECISION: Every change to a user's records is logged.
This provides:
1. Complete traceability
2. Debugging capability when Cloudinary, Resend or Plaid misbehave
3. User can see history of their records
4. Compliance readiness

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from hsa_tracker.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from hsa_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Expense lifecycle
    # -------------------------------------------------------------------------

    async def log_expense_created(
        self,
        expense_id: UUID,
        user_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_created(
            expense_id=expense_id,
            user_id=user_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_expense_updated(
        self,
        expense_id: UUID,
        user_id: str,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_updated(
            expense_id=expense_id,
            user_id=user_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_expense_deleted(
        self,
        expense_id: UUID,
        user_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_expense_reimbursed(
        self,
        expense_id: UUID,
        user_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.expense_reimbursed(
            expense_id=expense_id,
            user_id=user_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        user_id: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            user_id=user_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    async def log_document_uploaded(
        self,
        expense_id: UUID,
        user_id: str,
        kind: str,
        url: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.document_uploaded(
            expense_id=expense_id,
            user_id=user_id,
            kind=kind,
            url=url,
            correlation_id=correlation_id,
        ))

    async def log_document_deleted(
        self,
        expense_id: UUID,
        user_id: str,
        url: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.document_deleted(
            expense_id=expense_id,
            user_id=user_id,
            url=url,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Profile and bank link
    # -------------------------------------------------------------------------

    async def log_profile_updated(
        self,
        user_id: str,
        changed_fields: list[str],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.profile_updated(
            user_id=user_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_bank_linked(
        self,
        user_id: str,
        item_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bank_linked(
            user_id=user_id,
            item_id=item_id,
            correlation_id=correlation_id,
        ))

    async def log_bank_unlinked(
        self,
        user_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bank_unlinked(
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_balance_refreshed(
        self,
        user_id: str,
        balance: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.balance_refreshed(
            user_id=user_id,
            balance=balance,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Digest
    # -------------------------------------------------------------------------

    async def log_digest_sent(
        self,
        user_id: str,
        period_label: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.digest_sent(
            user_id=user_id,
            period_label=period_label,
            correlation_id=correlation_id,
        ))

    async def log_digest_failed(
        self,
        user_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.digest_failed(
            user_id=user_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    # -------------------------------------------------------------------------
    # Errors
    # -------------------------------------------------------------------------

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
