"""
Abstract Storage Interface

DESIGN DECISION: The engine talks to storage only through this interface.
This allows us to:
1. Run against SQLite in production
2. Use in-memory storage for tests and dry runs
3. Keep schedule logic decoupled from the storage implementation

CRITICAL: Idempotence is the store's job. Every backend must enforce
uniqueness of (template_id, occurrence_date, user_id) for instances, and
report an existing row instead of writing a second one. The engine never
does read-then-write checks; concurrent sweeps rely on this key alone.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recurring_ledger.models.audit import AuditEvent
from recurring_ledger.models.template import (
    LedgerInstance,
    RecurringTemplate,
    TemplateScan,
)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class TransientStorageError(StorageError):
    """A write or read failed in a way that may succeed on retry."""
    pass


class StoreUnavailableError(StorageError):
    """The backend cannot be reached at all; nothing else will work."""
    pass


# One retry for transient failures; anything else propagates immediately.
storage_retry = retry(
    retry=retry_if_exception_type(TransientStorageError),
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    reraise=True,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for template and instance storage.

    Any storage implementation (SQLite, in-memory, etc.)
    must implement these methods.
    """

    # ===== ENGINE OPERATIONS =====

    @abstractmethod
    async def list_active_templates(
        self,
        user_id: Optional[str] = None,
    ) -> TemplateScan:
        """
        List templates that are active with auto-create enabled.

        Args:
            user_id: Restrict to one user; None means all users

        Returns:
            TemplateScan. Rows that cannot be read as templates at all
            go in `unreadable`; rows with bad schedule fields are
            returned as templates for the validator to reject.

        Raises:
            StoreUnavailableError: If the backend cannot be reached
        """
        pass

    @abstractmethod
    async def list_instances(self, template_id: UUID) -> list[LedgerInstance]:
        """
        List instances generated from a template.

        Args:
            template_id: The owning template

        Returns:
            Instances sorted by occurrence date, newest first
        """
        pass

    @abstractmethod
    async def upsert_instance(self, instance: LedgerInstance) -> bool:
        """
        Insert an instance unless its key already exists.

        Args:
            instance: The instance snapshot to write

        Returns:
            True if a new row was created, False if the key existed

        Raises:
            DuplicateError: Backends without a native conflict clause may
                raise this instead of returning False
            TransientStorageError: If the write may succeed on retry
        """
        pass

    @abstractmethod
    async def set_template_active(self, template_id: UUID, is_active: bool) -> bool:
        """
        Flip a template's active flag.

        Returns:
            True if updated

        Raises:
            NotFoundError: If the template doesn't exist
        """
        pass

    # ===== USER ACTIONS AND STATUS =====

    @abstractmethod
    async def save_template(self, template: RecurringTemplate) -> bool:
        """Create or replace a template."""
        pass

    @abstractmethod
    async def get_template(self, template_id: UUID) -> Optional[RecurringTemplate]:
        pass

    @abstractmethod
    async def delete_template(self, template_id: UUID) -> bool:
        """
        Delete a template together with every instance generated from it.

        Returns:
            True if a template was deleted
        """
        pass

    @abstractmethod
    async def list_templates(self, user_id: str) -> list[RecurringTemplate]:
        """All of a user's templates, active or not."""
        pass

    @abstractmethod
    async def count_instances(self, user_id: str) -> int:
        """Number of generated instances a user owns."""
        pass

    @abstractmethod
    async def get_user_timezone(self, user_id: str) -> Optional[str]:
        """
        The user's stored timezone preference.

        Returns:
            An IANA name or UTC offset string, or None if unset

        Raises:
            NotFoundError: If the user doesn't exist
        """
        pass

    @abstractmethod
    async def set_user_timezone(self, user_id: str, timezone: str) -> None:
        """Create the user if needed and store their timezone."""
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
        """
        Get all events for a correlation ID (one sweep).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass
