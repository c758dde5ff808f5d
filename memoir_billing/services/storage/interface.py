"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep allowance state in a device-local file, Google Sheets, or memory
2. Use in-memory storage for testing
3. Keep the allowance logic decoupled from storage implementation

Persisted layout:
- one TierBalance record per tier identifier
- one global TrackerState record (active tier + initialized tiers)
"""

from abc import ABC, abstractmethod
from typing import Optional

from memoir_billing.models.audit import AuditEvent
from memoir_billing.models.subscription import TierBalance, TrackerState


class AllowanceStorageInterface(ABC):
    """
    Abstract interface for allowance storage operations.

    Implementations may raise StorageError (or a subclass) from any method.
    Callers treat CorruptRecordError on a load as "no record".
    """

    @abstractmethod
    async def load_tier_balance(self, tier_id: str) -> Optional[TierBalance]:
        """
        Retrieve the persisted balance for a tier.

        Args:
            tier_id: Local tier identifier

        Returns:
            The balance if found, None otherwise

        Raises:
            CorruptRecordError: If a record exists but cannot be parsed
        """
        pass

    @abstractmethod
    async def save_tier_balance(self, balance: TierBalance) -> bool:
        """
        Insert or replace the balance for balance.tier_id.

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def load_tracker_state(self) -> Optional[TrackerState]:
        """
        Retrieve the global tracker record.

        Returns:
            The record if one was ever saved, None otherwise

        Raises:
            CorruptRecordError: If the record exists but cannot be parsed
        """
        pass

    @abstractmethod
    async def save_tracker_state(self, state: TrackerState) -> bool:
        """
        Replace the global tracker record.

        Raises:
            StorageError: If save fails
        """
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
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class CorruptRecordError(StorageError):
    """A persisted record exists but could not be parsed."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
