"""
Subscription and Allowance Models for Memoir Billing

These models define the schemas for the allowance meter that sits on top
of the billing platform's entitlement signal:
1. TierBalance - one persisted record per tier
2. TrackerState - the single global record (active tier, initialized tiers)
3. AllowanceSnapshot - read-only view handed to callers
4. EntitlementEvent - one "entitlement changed" record from the billing platform

DESIGN DECISION: The billing platform is the source of truth for
*entitlement*. These models only describe the local credit meter.
All timestamps are stored as timezone-aware UTC datetimes.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


DEFAULT_MAX_ALLOWANCE_PER_PERIOD = 50


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive datetimes are interpreted as UTC so that timestamps coming from
    different sources can always be compared.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# PERSISTED RECORDS
# =============================================================================

class TierBalance(BaseModel):
    """
    Persisted allowance for a single tier.

    Balances survive deactivation so a returning subscriber picks up
    where they left off within the same billing period.
    """

    # Opaque key: stored exactly as given
    tier_id: str = Field(
        ...,
        description="Local tier identifier (e.g., 'monthly')"
    )
    remaining_allowance: int = Field(
        ...,
        ge=0,
        description="Generation credits left in the current period"
    )
    last_renewal_timestamp: Optional[datetime] = Field(
        default=None,
        description="Latest purchase/renewal instant that already triggered a reset"
    )
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("last_renewal_timestamp", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class TrackerState(BaseModel):
    """
    The single global record.

    Holds which tier is active and which tiers have already received
    their first-time grant.
    """

    active_tier_id: Optional[str] = Field(
        default=None,
        description="Currently entitled tier, None if unsubscribed"
    )
    initialized_tiers: set[str] = Field(
        default_factory=set,
        description="Tiers that already received their first-time allowance"
    )


# =============================================================================
# READ MODELS
# =============================================================================

class AllowanceSnapshot(BaseModel):
    """Read-only view of the allowance meter."""
    model_config = ConfigDict(frozen=True)

    active_tier_id: Optional[str] = None
    remaining_allowance: int = Field(default=0, ge=0)
    max_allowance_per_period: int = Field(default=DEFAULT_MAX_ALLOWANCE_PER_PERIOD, ge=0)

    @computed_field
    @property
    def is_subscribed(self) -> bool:
        return self.active_tier_id is not None

    @computed_field
    @property
    def is_exhausted(self) -> bool:
        return self.remaining_allowance == 0


# =============================================================================
# BILLING PLATFORM INPUT
# =============================================================================

class EntitlementEvent(BaseModel):
    """
    An "entitlement changed" record as reported by the billing platform.

    product_id is the store product identifier; it is mapped to a local
    tier through a static lookup table before reaching the tracker.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    product_id: str = Field(..., description="Store product identifier")
    is_active: bool = Field(default=True)
    expiration_date: Optional[datetime] = Field(
        default=None,
        description="When the current period ends (None for lifetime)"
    )
    latest_purchase_date: Optional[datetime] = Field(
        default=None,
        description="Last charge or period rollover"
    )

    @field_validator("expiration_date", "latest_purchase_date")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)
