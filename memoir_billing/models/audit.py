"""
Audit Models for Memoir Billing

Every change to the allowance meter is logged for audit purposes.
This provides:
1. Traceability of every grant, reset and consumption
2. Debugging information when entitlement refreshes misbehave
3. A record of best-effort persistence failures that were swallowed

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Allowance lifecycle
    ALLOWANCE_GRANTED = "allowance_granted"
    ALLOWANCE_RESET = "allowance_reset"
    ALLOWANCE_RESTORED = "allowance_restored"
    ALLOWANCE_CONSUMED = "allowance_consumed"
    CONSUME_IGNORED = "consume_ignored"

    # Entitlement
    ENTITLEMENT_CLEARED = "entitlement_cleared"
    ENTITLEMENT_UNMAPPED = "entitlement_unmapped"

    # Consumption call sites
    GENERATION_REFUSED = "generation_refused"

    # System events
    PERSISTENCE_FAILED = "persistence_failed"
    BILLING_FETCH_FAILED = "billing_fetch_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ResetReason(str, Enum):
    """Why an allowance was restored to the full period amount."""
    FIRST_ACTIVATION = "first_activation"
    RENEWAL = "renewal"
    TIER_SWITCH = "tier_switch"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Entity is always a tier identifier (or None for global events).
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'tier', 'product')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Identifier of the entity this event relates to"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one entitlement refresh)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    @field_validator("description", mode="before")
    @classmethod
    def truncate_description(cls, v: str) -> str:
        # Descriptions embed caller-supplied ids
        if isinstance(v, str) and len(v) > 500:
            return v[:497] + "..."
        return v

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.allowance_granted("monthly", 50, purchase_ts)
        event = AuditEventBuilder.allowance_consumed("monthly", 5, 45)
    """

    @staticmethod
    def allowance_granted(
        tier_id: str,
        allowance: int,
        purchase_timestamp: Optional[datetime],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOWANCE_GRANTED,
            entity_type="tier",
            entity_id=tier_id,
            correlation_id=correlation_id,
            description=f"First-time allowance granted for {tier_id}: {allowance}",
            details={
                "allowance": allowance,
                "reason": ResetReason.FIRST_ACTIVATION.value,
                "purchase_timestamp": _iso(purchase_timestamp),
            },
        )

    @staticmethod
    def allowance_reset(
        tier_id: str,
        allowance: int,
        reason: ResetReason,
        previous_tier_id: Optional[str],
        purchase_timestamp: Optional[datetime],
        renewal_timestamp: Optional[datetime],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOWANCE_RESET,
            entity_type="tier",
            entity_id=tier_id,
            correlation_id=correlation_id,
            description=f"Allowance reset for {tier_id} ({reason.value}): {allowance}",
            details={
                "allowance": allowance,
                "reason": reason.value,
                "previous_tier_id": previous_tier_id,
                "purchase_timestamp": _iso(purchase_timestamp),
                "renewal_timestamp": _iso(renewal_timestamp),
            },
        )

    @staticmethod
    def allowance_restored(
        tier_id: str,
        remaining: int,
        from_storage: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOWANCE_RESTORED,
            severity=AuditSeverity.DEBUG,
            entity_type="tier",
            entity_id=tier_id,
            correlation_id=correlation_id,
            description=f"Existing allowance kept for {tier_id}: {remaining}",
            details={
                "remaining": remaining,
                "from_storage": from_storage,
            },
        )

    @staticmethod
    def allowance_consumed(
        tier_id: str,
        amount: int,
        remaining: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOWANCE_CONSUMED,
            entity_type="tier",
            entity_id=tier_id,
            description=f"Consumed {amount} credits, {remaining} remaining",
            details={
                "amount": amount,
                "remaining": remaining,
            },
            is_user_action=True,
        )

    @staticmethod
    def consume_ignored(
        amount: int,
        reason: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONSUME_IGNORED,
            severity=AuditSeverity.WARNING,
            description=f"Consume of {amount} credits ignored: {reason}",
            details={
                "amount": amount,
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def entitlement_cleared(
        previous_tier_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITLEMENT_CLEARED,
            entity_type="tier",
            entity_id=previous_tier_id,
            correlation_id=correlation_id,
            description="No active entitlement; allowance set to zero",
            details={
                "previous_tier_id": previous_tier_id,
            },
        )

    @staticmethod
    def entitlement_unmapped(
        product_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITLEMENT_UNMAPPED,
            severity=AuditSeverity.WARNING,
            entity_type="product",
            entity_id=product_id,
            correlation_id=correlation_id,
            description=f"Unrecognized product identifier: {product_id}",
            details={
                "product_id": product_id,
            },
        )

    @staticmethod
    def generation_refused(
        tier_id: Optional[str],
        requested: int,
        remaining: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_REFUSED,
            severity=AuditSeverity.WARNING,
            entity_type="tier",
            entity_id=tier_id,
            description=f"Generation refused: requested {requested}, remaining {remaining}",
            details={
                "requested": requested,
                "remaining": remaining,
            },
            is_user_action=True,
        )

    @staticmethod
    def persistence_failed(
        operation: str,
        error_message: str,
        tier_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="tier" if tier_id else None,
            entity_id=tier_id,
            description=f"Persistence failed during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
        )

    @staticmethod
    def billing_fetch_failed(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLING_FETCH_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"Billing platform error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
