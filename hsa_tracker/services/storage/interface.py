"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the expense tracker needs.

CRITICAL: Every expense operation is scoped by user_id. An implementation
must never return or touch a row owned by someone else.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional
from uuid import UUID

from hsa_tracker.models.audit import AuditEvent
from hsa_tracker.models.expense import Expense
from hsa_tracker.models.profile import DigestFrequency, Profile


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for expense storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def save_expense(self, expense: Expense) -> bool:
        """
        Save a new expense.

        Args:
            expense: The expense to save; user_id must be set

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
            DuplicateError: If an expense with this id already exists
        """
        pass

    @abstractmethod
    async def get_expense(
        self,
        user_id: str,
        expense_id: UUID,
    ) -> Optional[Expense]:
        """
        Retrieve one of the user's expenses.

        Returns:
            The expense if found and owned by user_id, None otherwise
        """
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense) -> bool:
        """
        Replace an existing expense.

        Raises:
            StorageError: If update fails
            NotFoundError: If no expense with this id is owned by expense.user_id
        """
        pass

    @abstractmethod
    async def delete_expense(self, user_id: str, expense_id: UUID) -> bool:
        """
        Delete one of the user's expenses.

        Returns:
            True if a row was deleted, False if nothing matched
        """
        pass

    @abstractmethod
    async def list_expenses(
        self,
        user_id: str,
        tax_year: Optional[int] = None,
        reimbursed: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Expense]:
        """
        List a user's expenses, newest service date first.

        Args:
            user_id: Owner whose expenses are listed
            tax_year: Only expenses filed under this tax year
            reimbursed: Only reimbursed (True) or pending (False) expenses
            limit: Maximum number of results, None for all of them
            offset: Number of results to skip
        """
        pass


class ProfileStorageInterface(ABC):
    """Abstract interface for per-user profile storage."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        """Return the user's profile, or None if they never saved one."""
        pass

    @abstractmethod
    async def save_profile(self, profile: Profile) -> bool:
        """Insert or replace the profile keyed by profile.id."""
        pass

    @abstractmethod
    async def list_digest_subscribers(
        self,
        frequencies: Iterable[DigestFrequency],
    ) -> list[Profile]:
        """Profiles with the digest enabled at one of the given frequencies."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events for one user action, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'expense', 'profile')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        user_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events, newest first.

        Args:
            user_id: Only events belonging to this user
            limit: Maximum number of events to return
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
