"""
In-Memory Storage Implementation

Used in tests and in development mode when no durable backend is
configured. State lives for the lifetime of the process only.
"""

from typing import Optional

from memoir_billing.models.audit import AuditEvent
from memoir_billing.models.subscription import TierBalance, TrackerState
from memoir_billing.services.storage.interface import (
    AllowanceStorageInterface,
    AuditStorageInterface,
)


class InMemoryAllowanceStorage(AllowanceStorageInterface):
    """Dictionary-backed allowance storage. Records are copied on the way in and out."""

    def __init__(self):
        self._balances: dict[str, TierBalance] = {}
        self._state: Optional[TrackerState] = None

    async def load_tier_balance(self, tier_id: str) -> Optional[TierBalance]:
        balance = self._balances.get(tier_id)
        return balance.model_copy() if balance else None

    async def save_tier_balance(self, balance: TierBalance) -> bool:
        self._balances[balance.tier_id] = balance.model_copy()
        return True

    async def load_tracker_state(self) -> Optional[TrackerState]:
        return self._state.model_copy(deep=True) if self._state else None

    async def save_tracker_state(self, state: TrackerState) -> bool:
        self._state = state.model_copy(deep=True)
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed append-only audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
