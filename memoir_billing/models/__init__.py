"""
Data Models Package

This package contains all Pydantic models used by Memoir Billing.
All data flowing through the allowance meter must conform to these schemas.
"""

from memoir_billing.models.subscription import (
    DEFAULT_MAX_ALLOWANCE_PER_PERIOD,
    AllowanceSnapshot,
    EntitlementEvent,
    TierBalance,
    TrackerState,
    ensure_utc,
    utcnow,
)
from memoir_billing.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    ResetReason,
)

__all__ = [
    # Subscription models
    "DEFAULT_MAX_ALLOWANCE_PER_PERIOD",
    "AllowanceSnapshot",
    "EntitlementEvent",
    "TierBalance",
    "TrackerState",
    "ensure_utc",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    "ResetReason",
]
