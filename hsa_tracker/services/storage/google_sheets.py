"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the initial storage backend because:
1. Users can view (and hand their tax preparer) their records directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

Each entity gets its own worksheet. List-valued fields (document URLs) are
stored as JSON arrays in a single cell.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hsa_tracker.config import get_settings
from hsa_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from hsa_tracker.models.expense import (
    AccountType,
    ClaimType,
    Expense,
    ExpenseCategory,
    PatientRelationship,
)
from hsa_tracker.models.profile import CoverageType, DigestFrequency, Profile
from hsa_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    NotFoundError,
    ProfileStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "user_id",
    "created_at",
    "updated_at",
    "description",
    "amount",
    "date_of_service",
    "date_of_service_end",
    "provider",
    "patient_name",
    "patient_relationship",
    "account_type",
    "category",
    "expense_type",
    "claim_type",
    "payment_method",
    "notes",
    "reimbursed",
    "reimbursed_amount",
    "reimbursed_date",
    "tax_year",
    "receipt_urls_json",
    "eob_urls_json",
    "invoice_urls_json",
    "credit_card_statement_urls_json",
]

# Column mappings for Profiles sheet
PROFILE_COLUMNS = [
    "id",
    "email",
    "first_name",
    "last_name",
    "date_of_birth",
    "coverage_type",
    "current_hsa_balance",
    "annual_contribution",
    "expected_annual_return",
    "time_horizon_years",
    "federal_tax_bracket",
    "state_tax_rate",
    "email_digest_enabled",
    "email_digest_frequency",
    "plaid_access_token",
    "plaid_account_id",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(row: list, index: int) -> str:
    """Value at index, or "" for short rows and blank cells."""
    try:
        return row[index] or ""
    except IndexError:
        return ""


def _optional_date(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


def _optional_number(value) -> str:
    return "" if value is None else str(value)


def _parse_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_float(value: str) -> Optional[float]:
    return float(value) if value else None


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.expenses_sheet_name, EXPENSE_COLUMNS, rows=1000
        )

    def get_profiles_sheet(self) -> gspread.Worksheet:
        return self._get_or_create_sheet(
            self._settings.profiles_sheet_name, PROFILE_COLUMNS, rows=100
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsExpenseStorage(ExpenseStorageInterface):
    """
    Google Sheets implementation of expense storage.

    Expenses are stored as rows in a worksheet with one expense per row.
    The four document URL lists are JSON-serialized.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _expense_to_row(self, expense: Expense) -> list:
        """Convert an Expense to a spreadsheet row."""
        return [
            str(expense.id),
            expense.user_id or "",
            expense.created_at.isoformat(),
            expense.updated_at.isoformat(),
            expense.description,
            str(expense.amount),
            expense.date_of_service.isoformat(),
            _optional_date(expense.date_of_service_end),
            expense.provider,
            expense.patient_name,
            expense.patient_relationship.value,
            expense.account_type.value if expense.account_type else "",
            expense.category.value,
            expense.expense_type,
            expense.claim_type.value,
            expense.payment_method,
            expense.notes or "",
            str(expense.reimbursed),
            _optional_number(expense.reimbursed_amount),
            _optional_date(expense.reimbursed_date),
            _optional_number(expense.tax_year),
            json.dumps(expense.receipt_urls),
            json.dumps(expense.eob_urls),
            json.dumps(expense.invoice_urls),
            json.dumps(expense.credit_card_statement_urls),
        ]

    def _row_to_expense(self, row: list) -> Expense:
        """Convert a spreadsheet row to an Expense."""
        def urls(index: int) -> list[str]:
            raw = _cell(row, index)
            return json.loads(raw) if raw else []

        account = _cell(row, 11)
        reimbursed_amount = _cell(row, 18)
        tax_year = _cell(row, 20)

        return Expense.from_record(dict(
            id=UUID(_cell(row, 0)),
            user_id=_cell(row, 1) or None,
            created_at=datetime.fromisoformat(_cell(row, 2)),
            updated_at=datetime.fromisoformat(_cell(row, 3)),
            description=_cell(row, 4),
            amount=Decimal(_cell(row, 5)),
            date_of_service=date.fromisoformat(_cell(row, 6)),
            date_of_service_end=_parse_date(_cell(row, 7)),
            provider=_cell(row, 8),
            patient_name=_cell(row, 9),
            patient_relationship=PatientRelationship(_cell(row, 10) or "self"),
            account_type=AccountType(account) if account else None,
            category=ExpenseCategory(_cell(row, 12) or "medical"),
            expense_type=_cell(row, 13),
            claim_type=ClaimType(_cell(row, 14) or "new"),
            payment_method=_cell(row, 15),
            notes=_cell(row, 16) or None,
            reimbursed=_parse_bool(_cell(row, 17)),
            reimbursed_amount=Decimal(reimbursed_amount) if reimbursed_amount else None,
            reimbursed_date=_parse_date(_cell(row, 19)),
            tax_year=int(tax_year) if tax_year else None,
            receipt_urls=urls(21),
            eob_urls=urls(22),
            invoice_urls=urls(23),
            credit_card_statement_urls=urls(24),
        ))

    def _find_row(self, all_rows: list[list], user_id: str, expense_id: UUID) -> Optional[int]:
        """1-based sheet row index of the user's expense, or None."""
        for idx, row in enumerate(all_rows[1:], start=2):  # Start from 2 (row 1 is header)
            if row and row[0] == str(expense_id) and _cell(row, 1) == user_id:
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def save_expense(self, expense: Expense) -> bool:
        """Save a new expense to Google Sheets."""
        if not expense.user_id:
            raise StorageError("Cannot save an expense without a user_id")
        try:
            sheet = self._client.get_expenses_sheet()
            existing_ids = sheet.col_values(1)[1:]
            if str(expense.id) in existing_ids:
                raise DuplicateError(f"Expense already exists: {expense.id}")
            sheet.append_row(self._expense_to_row(expense), value_input_option="RAW")
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def get_expense(
        self,
        user_id: str,
        expense_id: UUID,
    ) -> Optional[Expense]:
        """Retrieve one of the user's expenses."""
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()
            idx = self._find_row(all_rows, user_id, expense_id)
            if idx is None:
                return None
            return self._row_to_expense(all_rows[idx - 1])
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

    async def update_expense(self, expense: Expense) -> bool:
        """Replace an existing expense row."""
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()
            idx = self._find_row(all_rows, expense.user_id or "", expense.id)
            if idx is None:
                raise NotFoundError(f"Expense not found: {expense.id}")

            expense.updated_at = datetime.utcnow()
            sheet.update(
                range_name=f"A{idx}",
                values=[self._expense_to_row(expense)],
                value_input_option="RAW",
            )
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

    async def delete_expense(self, user_id: str, expense_id: UUID) -> bool:
        """Delete one of the user's expenses."""
        try:
            sheet = self._client.get_expenses_sheet()
            idx = self._find_row(sheet.get_all_values(), user_id, expense_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

    async def list_expenses(
        self,
        user_id: str,
        tax_year: Optional[int] = None,
        reimbursed: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Expense]:
        """List a user's expenses with optional filters."""
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            expenses = []
            for row in all_rows:
                if not row or not row[0] or _cell(row, 1) != user_id:
                    continue

                try:
                    expense = self._row_to_expense(row)
                except Exception as e:
                    logger.warning("expense_row_skipped", row_id=row[0], error=str(e))
                    continue

                if tax_year is not None and expense.effective_tax_year != tax_year:
                    continue
                if reimbursed is not None and expense.reimbursed != reimbursed:
                    continue

                expenses.append(expense)

            # Newest service date first
            expenses.sort(key=lambda e: e.date_of_service, reverse=True)

            end = None if limit is None else offset + limit
            return expenses[offset:end]
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")


class GoogleSheetsProfileStorage(ProfileStorageInterface):
    """Google Sheets implementation of profile storage. One row per user."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _profile_to_row(self, profile: Profile) -> list:
        return [
            profile.id,
            profile.email,
            profile.first_name,
            profile.last_name,
            _optional_date(profile.date_of_birth),
            profile.coverage_type.value,
            _optional_number(profile.current_hsa_balance),
            _optional_number(profile.annual_contribution),
            _optional_number(profile.expected_annual_return),
            _optional_number(profile.time_horizon_years),
            _optional_number(profile.federal_tax_bracket),
            _optional_number(profile.state_tax_rate),
            str(profile.email_digest_enabled),
            profile.email_digest_frequency.value,
            profile.plaid_access_token or "",
            profile.plaid_account_id or "",
            profile.created_at.isoformat(),
            profile.updated_at.isoformat(),
        ]

    def _row_to_profile(self, row: list) -> Profile:
        horizon = _cell(row, 9)
        created = _cell(row, 16)
        updated = _cell(row, 17)

        data = dict(
            id=_cell(row, 0),
            email=_cell(row, 1),
            first_name=_cell(row, 2),
            last_name=_cell(row, 3),
            date_of_birth=_parse_date(_cell(row, 4)),
            coverage_type=CoverageType(_cell(row, 5) or "individual"),
            current_hsa_balance=_parse_float(_cell(row, 6)),
            annual_contribution=_parse_float(_cell(row, 7)),
            expected_annual_return=_parse_float(_cell(row, 8)),
            time_horizon_years=int(float(horizon)) if horizon else None,
            federal_tax_bracket=_parse_float(_cell(row, 10)),
            state_tax_rate=_parse_float(_cell(row, 11)),
            email_digest_enabled=_parse_bool(_cell(row, 12)),
            email_digest_frequency=DigestFrequency(_cell(row, 13) or "monthly"),
            plaid_access_token=_cell(row, 14) or None,
            plaid_account_id=_cell(row, 15) or None,
        )
        if created:
            data["created_at"] = datetime.fromisoformat(created)
        if updated:
            data["updated_at"] = datetime.fromisoformat(updated)
        return Profile(**data)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            sheet = self._client.get_profiles_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == user_id:
                    return self._row_to_profile(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get profile: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_profile(self, profile: Profile) -> bool:
        """Insert the profile, or overwrite the existing row for this user."""
        try:
            sheet = self._client.get_profiles_sheet()
            all_rows = sheet.get_all_values()
            profile.updated_at = datetime.utcnow()
            row = self._profile_to_row(profile)

            for idx, existing in enumerate(all_rows[1:], start=2):
                if existing and existing[0] == profile.id:
                    sheet.update(range_name=f"A{idx}", values=[row], value_input_option="RAW")
                    return True

            sheet.append_row(row, value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save profile: {e}")

    async def list_digest_subscribers(
        self,
        frequencies: Iterable[DigestFrequency],
    ) -> list[Profile]:
        wanted = set(frequencies)
        if not wanted:
            return []
        try:
            sheet = self._client.get_profiles_sheet()
            subscribers = []
            for row in sheet.get_all_values()[1:]:
                if not row or not row[0]:
                    continue
                try:
                    profile = self._row_to_profile(row)
                except Exception as e:
                    logger.warning("profile_row_skipped", row_id=row[0], error=str(e))
                    continue
                if (
                    profile.email_digest_enabled
                    and profile.email
                    and profile.email_digest_frequency in wanted
                ):
                    subscribers.append(profile)
            return subscribers
        except Exception as e:
            raise StorageError(f"Failed to list digest subscribers: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        entity_id = _cell(row, 6)
        correlation_id = _cell(row, 7)
        details = _cell(row, 9)

        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            user_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=UUID(entity_id) if entity_id else None,
            correlation_id=UUID(correlation_id) if correlation_id else None,
            description=_cell(row, 8),
            details=json.loads(details) if details else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_parse_bool(_cell(row, 11)),
        )

    def _read_events(self, predicate) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0] or not predicate(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception as e:
                logger.warning("audit_row_skipped", row_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = self._read_events(lambda row: _cell(row, 7) == str(correlation_id))
            # Sort chronologically
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = self._read_events(
                lambda row: _cell(row, 5) == entity_type and _cell(row, 6) == str(entity_id)
            )
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events(
                lambda row: user_id is None or _cell(row, 4) == user_id
            )
            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
