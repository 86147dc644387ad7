"""
Main Orchestrator for HSA Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Expenses (validate → save → attach documents → reimburse → delete)
2. Profile (assumptions, digest preferences, bank link and balance refresh)
3. Digest (pick subscribers → aggregate → render → send)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches storage without passing validation
- Every read and write is scoped to the acting user
- Every mutation is audited
- A collaborator failure is audited and then re-raised, never hidden

The engines (projection, rules, aggregation) stay pure. Flows load data,
hand it to them, and persist what comes back.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import NamedTuple, Optional
from uuid import UUID

import structlog

from hsa_tracker.audit import AuditLogger, create_correlation_id
from hsa_tracker.config import get_settings
from hsa_tracker.models.expense import (
    DocumentKind,
    Expense,
    ExpenseInput,
    ValidationResult,
)
from hsa_tracker.models.profile import DigestFrequency, Profile, parameters_for
from hsa_tracker.models.stats import DashboardStats, DigestExpenseLine, DigestSummary
from hsa_tracker.queries.formatting import short_date
from hsa_tracker.queries.stats import (
    ZERO,
    audit_readiness,
    calculate_expected_return,
    compute_dashboard_stats,
    reimbursed_value,
    total_amount,
    total_reimbursed,
)
from hsa_tracker.services.banking import BankLinkError, PlaidBankService
from hsa_tracker.services.documents import (
    CloudinaryDocumentService,
    DocumentUploadError,
)
from hsa_tracker.services.email import (
    DigestEmailRenderer,
    ResendEmailService,
    digest_subject,
)
from hsa_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    ExpenseStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    GoogleSheetsProfileStorage,
    NotFoundError,
    ProfileStorageInterface,
)
from hsa_tracker.validation import ExpenseValidator


logger = structlog.get_logger(__name__)

# Fields compared when reporting what an edit changed
_TRACKED_EXCLUDE = {"id", "user_id", "created_at", "updated_at"}


class ExpenseValidationError(Exception):
    """Raised when a flow refuses to persist invalid expense input."""

    def __init__(self, result: ValidationResult, message: str):
        super().__init__(message)
        self.result = result


def _changed_fields(before: dict, after: dict) -> list[str]:
    return sorted(
        key for key in after
        if key not in _TRACKED_EXCLUDE and before.get(key) != after.get(key)
    )


def _to_input(expense: Expense, **overrides) -> ExpenseInput:
    data = expense.model_dump(include=set(ExpenseInput.model_fields))
    data.update(overrides)
    return ExpenseInput(**data)


class ExpenseFlow:
    """
    Orchestrates expense CRUD.

    Flow for a new expense:
    1. Validate → two-stage validation of the form payload
    2. Refuse → audit and raise ExpenseValidationError on errors
    3. Save → persist the Expense owned by the acting user
    4. Audit → expense_created

    Warnings never block a save; they come back with the result.
    """

    def __init__(
        self,
        expense_storage: Optional[ExpenseStorageInterface] = None,
        validator: Optional[ExpenseValidator] = None,
        document_service: Optional[CloudinaryDocumentService] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = expense_storage
        self._validator = validator or ExpenseValidator(expense_storage)
        self._documents = document_service
        self._audit_logger = audit_logger or AuditLogger()

    def _require_storage(self) -> ExpenseStorageInterface:
        if self._storage is None:
            raise ConnectionError(
                "Expense storage isn't configured. Please set up Google Sheets first."
            )
        return self._storage

    async def _get_owned(self, user_id: str, expense_id: UUID) -> Expense:
        expense = await self._require_storage().get_expense(user_id, expense_id)
        if expense is None:
            raise NotFoundError(f"Expense not found: {expense_id}")
        return expense

    async def _check(
        self,
        user_id: str,
        payload: ExpenseInput,
        correlation_id: UUID,
        exclude_id: Optional[UUID] = None,
        check_duplicates: bool = True,
        today: Optional[date] = None,
    ) -> ValidationResult:
        result = await self._validator.validate(
            payload,
            user_id=user_id,
            check_duplicates=check_duplicates,
            exclude_id=exclude_id,
            today=today,
        )
        if not result.is_valid:
            await self._audit_logger.log_validation_failed(
                user_id=user_id,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                    if i.severity == "error"
                ],
                correlation_id=correlation_id,
            )
            raise ExpenseValidationError(
                result,
                self._validator.get_user_friendly_summary(result),
            )
        return result

    async def add_expense(
        self,
        user_id: str,
        payload: ExpenseInput,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> tuple[Expense, ValidationResult]:
        """
        Validate and save a new expense.

        A reimbursed payload without a reimbursed date is dated today.

        Returns:
            (saved_expense, validation_result)

        Raises:
            ExpenseValidationError: If the payload has errors
        """
        correlation_id = correlation_id or create_correlation_id()
        today = today or date.today()
        storage = self._require_storage()

        result = await self._check(user_id, payload, correlation_id, today=today)

        overrides = {}
        if payload.reimbursed and payload.reimbursed_date is None:
            overrides["reimbursed_date"] = today
        expense = payload.to_expense(user_id, **overrides)

        await storage.save_expense(expense)
        await self._audit_logger.log_expense_created(
            expense_id=expense.id,
            user_id=user_id,
            amount=str(expense.amount),
            correlation_id=correlation_id,
        )
        return expense, result

    async def update_expense(
        self,
        user_id: str,
        expense_id: UUID,
        payload: ExpenseInput,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> tuple[Expense, ValidationResult]:
        """Validate and replace one of the user's expenses."""
        correlation_id = correlation_id or create_correlation_id()
        today = today or date.today()
        existing = await self._get_owned(user_id, expense_id)

        result = await self._check(
            user_id, payload, correlation_id, exclude_id=expense_id, today=today
        )

        overrides = {
            "id": existing.id,
            "created_at": existing.created_at,
            "updated_at": datetime.utcnow(),
        }
        if payload.reimbursed and payload.reimbursed_date is None:
            overrides["reimbursed_date"] = existing.reimbursed_date or today
        updated = payload.to_expense(user_id, **overrides)

        await self._require_storage().update_expense(updated)
        await self._audit_logger.log_expense_updated(
            expense_id=expense_id,
            user_id=user_id,
            changed_fields=_changed_fields(existing.model_dump(), updated.model_dump()),
            correlation_id=correlation_id,
        )
        return updated, result

    async def mark_reimbursed(
        self,
        user_id: str,
        expense_id: UUID,
        amount: Optional[Decimal] = None,
        correlation_id: Optional[UUID] = None,
        today: Optional[date] = None,
    ) -> Expense:
        """
        Mark an expense reimbursed today.

        Args:
            amount: Amount paid back; defaults to the full expense amount
        """
        correlation_id = correlation_id or create_correlation_id()
        today = today or date.today()
        existing = await self._get_owned(user_id, expense_id)
        amount = existing.amount if amount is None else Decimal(str(amount))

        payload = _to_input(
            existing,
            reimbursed=True,
            reimbursed_amount=amount,
            reimbursed_date=today,
        )
        await self._check(
            user_id, payload, correlation_id, check_duplicates=False, today=today
        )

        updated = existing.model_copy(update={
            "reimbursed": True,
            "reimbursed_amount": amount,
            "reimbursed_date": today,
            "updated_at": datetime.utcnow(),
        })
        await self._require_storage().update_expense(updated)
        await self._audit_logger.log_expense_reimbursed(
            expense_id=expense_id,
            user_id=user_id,
            amount=str(amount),
            correlation_id=correlation_id,
        )
        return updated

    async def delete_expense(
        self,
        user_id: str,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete an expense and then its stored documents.

        Document cleanup failures are audited but don't undo the delete.
        """
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._get_owned(user_id, expense_id)

        deleted = await self._require_storage().delete_expense(user_id, expense_id)
        if not deleted:
            return False

        await self._audit_logger.log_expense_deleted(
            expense_id=expense_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )

        if self._documents:
            for kind in DocumentKind:
                for url in existing.documents(kind):
                    try:
                        await self._documents.delete_document(url, user_id)
                    except Exception as e:
                        await self._audit_logger.log_external_service_error(
                            service="cloudinary",
                            error_message=str(e),
                            correlation_id=correlation_id,
                        )
        return True

    async def attach_document(
        self,
        user_id: str,
        expense_id: UUID,
        kind: DocumentKind,
        file_bytes: bytes,
        filename: str,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """Upload a supporting document and attach its URL to the expense."""
        correlation_id = correlation_id or create_correlation_id()
        if self._documents is None:
            raise DocumentUploadError("Document storage isn't configured")

        existing = await self._get_owned(user_id, expense_id)

        try:
            url = await self._documents.upload_document(file_bytes, filename, user_id, kind)
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="cloudinary",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        updated = existing.with_document(kind, url)
        await self._require_storage().update_expense(updated)
        await self._audit_logger.log_document_uploaded(
            expense_id=expense_id,
            user_id=user_id,
            kind=kind.value,
            url=url,
            correlation_id=correlation_id,
        )
        return updated

    async def detach_document(
        self,
        user_id: str,
        expense_id: UUID,
        url: str,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """Delete a stored document and remove its URL from the expense."""
        correlation_id = correlation_id or create_correlation_id()
        existing = await self._get_owned(user_id, expense_id)

        updated = existing.without_document(url)
        if updated is existing:
            raise NotFoundError("Document is not attached to this expense")

        if self._documents:
            try:
                await self._documents.delete_document(url, user_id)
            except Exception as e:
                await self._audit_logger.log_external_service_error(
                    service="cloudinary",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                raise

        await self._require_storage().update_expense(updated)
        await self._audit_logger.log_document_deleted(
            expense_id=expense_id,
            user_id=user_id,
            url=url,
            correlation_id=correlation_id,
        )
        return updated

    async def list_expenses(
        self,
        user_id: str,
        tax_year: Optional[int] = None,
    ) -> list[Expense]:
        """The user's expenses, newest service date first."""
        return await self._require_storage().list_expenses(
            user_id, tax_year=tax_year, limit=None
        )

    async def dashboard_stats(
        self,
        user_id: str,
        profile: Optional[Profile] = None,
        current_year: Optional[int] = None,
    ) -> DashboardStats:
        expenses = await self.list_expenses(user_id)
        return compute_dashboard_stats(
            expenses,
            params=parameters_for(profile),
            current_year=current_year,
        )


class ProfileFlow:
    """
    Orchestrates profile settings and the bank link.

    CRITICAL: A balance refresh writes ONLY current_hsa_balance. Every other
    profile field keeps the value the user last saved.
    """

    def __init__(
        self,
        profile_storage: Optional[ProfileStorageInterface] = None,
        bank_service: Optional[PlaidBankService] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = profile_storage
        self._bank = bank_service
        self._audit_logger = audit_logger or AuditLogger()

    def _require_storage(self) -> ProfileStorageInterface:
        if self._storage is None:
            raise ConnectionError(
                "Profile storage isn't configured. Please set up Google Sheets first."
            )
        return self._storage

    def _require_bank(self) -> PlaidBankService:
        if self._bank is None:
            raise BankLinkError("Bank linking isn't configured")
        return self._bank

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        return await self._require_storage().get_profile(user_id)

    async def save_profile(
        self,
        profile: Profile,
        correlation_id: Optional[UUID] = None,
    ) -> Profile:
        """Insert or update the user's profile and audit which fields changed."""
        correlation_id = correlation_id or create_correlation_id()
        storage = self._require_storage()

        existing = await storage.get_profile(profile.id)
        if existing is not None:
            profile = profile.model_copy(update={"created_at": existing.created_at})
            before = existing.model_dump()
        else:
            before = {}

        await storage.save_profile(profile)
        await self._audit_logger.log_profile_updated(
            user_id=profile.id,
            changed_fields=_changed_fields(before, profile.model_dump()),
            correlation_id=correlation_id,
        )
        return profile

    async def create_link_token(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        correlation_id = correlation_id or create_correlation_id()
        try:
            return await self._require_bank().create_link_token(user_id)
        except BankLinkError as e:
            await self._audit_logger.log_external_service_error(
                service="plaid",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

    async def link_bank(
        self,
        user_id: str,
        public_token: str,
        account_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Profile:
        """Exchange the Link token and store the access token on the profile."""
        correlation_id = correlation_id or create_correlation_id()
        storage = self._require_storage()

        try:
            access_token, item_id = await self._require_bank().exchange_public_token(public_token)
        except BankLinkError as e:
            await self._audit_logger.log_external_service_error(
                service="plaid",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        profile = await storage.get_profile(user_id) or Profile(id=user_id)
        profile = profile.model_copy(update={
            "plaid_access_token": access_token,
            "plaid_account_id": account_id,
        })
        await storage.save_profile(profile)
        await self._audit_logger.log_bank_linked(
            user_id=user_id,
            item_id=item_id,
            correlation_id=correlation_id,
        )
        return profile

    async def refresh_balance(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> float:
        """
        Pull the linked account's balance into current_hsa_balance.

        Raises:
            BankLinkError: If no account is linked or Plaid fails
        """
        correlation_id = correlation_id or create_correlation_id()
        storage = self._require_storage()

        profile = await storage.get_profile(user_id)
        if profile is None or not profile.bank_linked:
            raise BankLinkError("No bank account linked")

        try:
            balance = await self._require_bank().get_balance(
                profile.plaid_access_token,
                profile.plaid_account_id,
            )
        except Exception as e:
            await self._audit_logger.log_external_service_error(
                service="plaid",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await storage.save_profile(
            profile.model_copy(update={"current_hsa_balance": balance})
        )
        await self._audit_logger.log_balance_refreshed(
            user_id=user_id,
            balance=balance,
            correlation_id=correlation_id,
        )
        return balance

    async def unlink_bank(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Profile:
        """Disconnect the bank and forget the access token."""
        correlation_id = correlation_id or create_correlation_id()
        storage = self._require_storage()

        profile = await storage.get_profile(user_id)
        if profile is None or not profile.bank_linked:
            raise BankLinkError("No bank account linked")

        try:
            await self._require_bank().remove_item(profile.plaid_access_token)
        except BankLinkError as e:
            await self._audit_logger.log_external_service_error(
                service="plaid",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        profile = profile.model_copy(update={
            "plaid_access_token": None,
            "plaid_account_id": None,
        })
        await storage.save_profile(profile)
        await self._audit_logger.log_bank_unlinked(
            user_id=user_id,
            correlation_id=correlation_id,
        )
        return profile


# =============================================================================
# EMAIL DIGEST
# =============================================================================

class DigestRunResult(NamedTuple):
    """Outcome of one digest run."""
    frequencies: list[DigestFrequency]
    sent: int
    failed: list[str]

    @property
    def message(self) -> str:
        if not self.frequencies:
            return "No digests scheduled today"
        return f"Sent {self.sent} digest(s)"


def frequencies_due(today: date) -> list[DigestFrequency]:
    """Weekly digests go out on Mondays, monthly ones on the 1st."""
    due = []
    if today.weekday() == 0:
        due.append(DigestFrequency.WEEKLY)
    if today.day == 1:
        due.append(DigestFrequency.MONTHLY)
    return due


def period_start(frequency: DigestFrequency, today: date) -> date:
    """First day covered by a digest sent today."""
    if frequency == DigestFrequency.WEEKLY:
        return today - timedelta(days=7)

    # Same day last month, clamped to that month's length
    year, month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
    first_of_this_month = today.replace(day=1)
    last_day_prev = (first_of_this_month - timedelta(days=1)).day
    return date(year, month, min(today.day, last_day_prev))


def period_label(frequency: DigestFrequency, today: date) -> str:
    """'October 2026' for monthly digests, 'Week of Oct 12' for weekly ones."""
    if frequency == DigestFrequency.MONTHLY:
        return today.strftime("%B %Y")
    return f"Week of {short_date(period_start(frequency, today))}"


class DigestJob:
    """
    Sends the periodic email digest to every subscriber due today.

    FAILURE ISOLATION: one subscriber's failure (storage, rendering or
    sending) is recorded against their address and the run continues.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        profile_storage: ProfileStorageInterface,
        email_service: ResendEmailService,
        renderer: Optional[DigestEmailRenderer] = None,
        audit_logger: Optional[AuditLogger] = None,
        top_n: int = 5,
        cron_secret: str = "",
    ):
        self._expenses = expense_storage
        self._profiles = profile_storage
        self._email = email_service
        self._renderer = renderer or DigestEmailRenderer()
        self._audit_logger = audit_logger or AuditLogger()
        self._top_n = top_n
        self._cron_secret = cron_secret

    def authorize(self, authorization: Optional[str]) -> bool:
        """Check a 'Bearer <secret>' header; anything goes when no secret is set."""
        if not self._cron_secret:
            return True
        return authorization == f"Bearer {self._cron_secret}"

    def build_digest(
        self,
        profile: Profile,
        expenses: list[Expense],
        today: date,
    ) -> DigestSummary:
        """Aggregate one user's expenses for the period ending today."""
        frequency = profile.email_digest_frequency
        start = period_start(frequency, today)
        params = parameters_for(profile)

        new_count = sum(1 for e in expenses if e.created_at.date() >= start)
        reimbursed_this_period = sum(
            (
                reimbursed_value(e) for e in expenses
                if e.reimbursed and e.reimbursed_date and e.reimbursed_date >= start
            ),
            ZERO,
        )

        total = total_amount(expenses)
        expected = calculate_expected_return(
            expenses,
            params.annual_return_pct,
            params.time_horizon_years,
        )

        recent = sorted(expenses, key=lambda e: e.date_of_service, reverse=True)
        top = [
            DigestExpenseLine(
                description=e.description,
                amount=e.amount,
                date=short_date(e.date_of_service),
            )
            for e in recent[:self._top_n]
        ]

        return DigestSummary(
            first_name=profile.display_name,
            period_label=period_label(frequency, today),
            hsa_balance=profile.current_hsa_balance or 0.0,
            total_expenses=total,
            pending_reimbursement=total - total_reimbursed(expenses),
            new_expense_count=new_count,
            reimbursed_this_period=reimbursed_this_period,
            projected_growth=expected.extra_growth,
            time_horizon=params.time_horizon_years,
            annual_return=params.annual_return_pct,
            audit_ready_pct=audit_readiness(expenses).ready_pct,
            top_expenses=top,
        )

    async def _send_one(self, profile: Profile, today: date, correlation_id: UUID) -> None:
        expenses = await self._expenses.list_expenses(profile.id, limit=None)
        summary = self.build_digest(profile, expenses, today)
        html = self._renderer.render(summary)
        await self._email.send(profile.email, digest_subject(summary.period_label), html)
        await self._audit_logger.log_digest_sent(
            user_id=profile.id,
            period_label=summary.period_label,
            correlation_id=correlation_id,
        )

    async def run(
        self,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> DigestRunResult:
        """Send every digest due today."""
        today = today or date.today()
        correlation_id = correlation_id or create_correlation_id()

        due = frequencies_due(today)
        if not due:
            return DigestRunResult(frequencies=[], sent=0, failed=[])

        subscribers = await self._profiles.list_digest_subscribers(due)

        sent = 0
        failed: list[str] = []
        for profile in subscribers:
            try:
                await self._send_one(profile, today, correlation_id)
                sent += 1
            except Exception as e:
                logger.error("digest_send_failed", email=profile.email, error=str(e))
                failed.append(profile.email)
                await self._audit_logger.log_digest_failed(
                    user_id=profile.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )

        return DigestRunResult(frequencies=due, sent=sent, failed=failed)


# =============================================================================
# WIRING
# =============================================================================

class AppComponents(NamedTuple):
    expense_flow: ExpenseFlow
    profile_flow: ProfileFlow
    digest_job: Optional[DigestJob]
    sheets_client: Optional[GoogleSheetsClient]


def _optional_service(name: str, factory):
    """Build a collaborator, or None when its settings are missing."""
    try:
        return factory()
    except Exception as e:
        logger.warning("service_not_configured", service=name, error=str(e))
        return None


def create_app_components(
    use_storage: bool = True,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run without persistence.
        audit_storage: Override for the audit backend.

    Returns:
        AppComponents; missing collaborators are None and the flows raise
        a clear error when asked to use them.
    """
    app_settings = get_settings().app

    sheets_client = None
    expense_storage = None
    profile_storage = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            expense_storage = GoogleSheetsExpenseStorage(sheets_client)
            profile_storage = GoogleSheetsProfileStorage(sheets_client)
            audit_storage = audit_storage or GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            expense_storage = None
            profile_storage = None

    audit_logger = AuditLogger(audit_storage)

    document_service = _optional_service("cloudinary", CloudinaryDocumentService)
    bank_service = _optional_service("plaid", PlaidBankService)
    email_service = _optional_service("resend", ResendEmailService)

    expense_flow = ExpenseFlow(
        expense_storage=expense_storage,
        validator=ExpenseValidator(expense_storage, app_settings),
        document_service=document_service,
        audit_logger=audit_logger,
    )
    profile_flow = ProfileFlow(
        profile_storage=profile_storage,
        bank_service=bank_service,
        audit_logger=audit_logger,
    )

    digest_job = None
    if expense_storage and profile_storage and email_service:
        digest_job = DigestJob(
            expense_storage=expense_storage,
            profile_storage=profile_storage,
            email_service=email_service,
            renderer=DigestEmailRenderer(app_settings.app_url),
            audit_logger=audit_logger,
            top_n=app_settings.digest_top_n,
            cron_secret=app_settings.cron_secret,
        )

    return AppComponents(
        expense_flow=expense_flow,
        profile_flow=profile_flow,
        digest_job=digest_job,
        sheets_client=sheets_client,
    )
