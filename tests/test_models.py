"""
Tests for Memoir Billing models

Test strategy:
1. Unit tests for individual components (models, tracker, sync)
2. Integration tests for wiring (with mocked external services)
3. No real API calls in tests (use mocks)
"""

import pytest
from datetime import datetime, timezone
from uuid import uuid4

from memoir_billing.models.subscription import (
    AllowanceSnapshot,
    EntitlementEvent,
    TierBalance,
    TrackerState,
    ensure_utc,
)
from memoir_billing.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    ResetReason,
)


class TestSubscriptionModels:
    """Tests for subscription-related Pydantic models."""

    def test_tier_balance_creation(self):
        """Test TierBalance model creation."""
        balance = TierBalance(tier_id="monthly", remaining_allowance=38)
        assert balance.tier_id == "monthly"
        assert balance.remaining_allowance == 38
        assert balance.last_renewal_timestamp is None
        assert balance.updated_at.tzinfo is not None

    def test_tier_balance_rejects_negative_allowance(self):
        """Test that negative balances are rejected."""
        with pytest.raises(ValueError):
            TierBalance(tier_id="monthly", remaining_allowance=-1)

    def test_tier_balance_keeps_tier_id_verbatim(self):
        """Tier ids are opaque keys: no stripping, no length limit."""
        assert TierBalance(tier_id="  yearly  ", remaining_allowance=0).tier_id == "  yearly  "
        assert TierBalance(tier_id="", remaining_allowance=0).tier_id == ""
        assert TierBalance(tier_id="t" * 101, remaining_allowance=0).tier_id == "t" * 101

    def test_naive_timestamps_are_treated_as_utc(self):
        """Naive datetimes are interpreted as UTC."""
        balance = TierBalance(
            tier_id="monthly",
            remaining_allowance=1,
            last_renewal_timestamp=datetime(2025, 1, 1, 12, 0),
        )
        assert balance.last_renewal_timestamp == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts_offsets(self):
        """Aware datetimes are converted to UTC."""
        from datetime import timedelta
        plus_two = timezone(timedelta(hours=2))
        value = ensure_utc(datetime(2025, 1, 1, 14, 0, tzinfo=plus_two))
        assert value == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert value.tzinfo == timezone.utc
        assert ensure_utc(None) is None

    def test_tracker_state_defaults(self):
        """A fresh tracker state has no tier and no initialized tiers."""
        state = TrackerState()
        assert state.active_tier_id is None
        assert state.initialized_tiers == set()

    def test_snapshot_flags(self):
        """Test AllowanceSnapshot convenience properties."""
        snapshot = AllowanceSnapshot(active_tier_id="monthly", remaining_allowance=0)
        assert snapshot.is_subscribed is True
        assert snapshot.is_exhausted is True
        assert snapshot.max_allowance_per_period == 50

        unsubscribed = AllowanceSnapshot()
        assert unsubscribed.is_subscribed is False

    def test_snapshot_is_frozen(self):
        """Snapshots cannot be mutated."""
        snapshot = AllowanceSnapshot(active_tier_id="monthly", remaining_allowance=10)
        with pytest.raises(ValueError):
            snapshot.remaining_allowance = 5

    def test_entitlement_event_defaults(self):
        """Test EntitlementEvent model creation."""
        event = EntitlementEvent(product_id="plan.monthly")
        assert event.is_active is True
        assert event.expiration_date is None
        assert event.latest_purchase_date is None


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.ALLOWANCE_CONSUMED,
            description="Consumed",
        )
        assert event.event_type == AuditEventType.ALLOWANCE_CONSUMED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.allowance_consumed("monthly", 12, 38)
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "allowance_consumed"
        assert log_dict["entity_id"] == "monthly"
        assert log_dict["details"]["remaining"] == 38

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEventBuilder.consume_ignored(5, "no_active_tier")
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "consume_ignored"
        assert row[10] == "True"

    def test_allowance_reset_builder(self):
        """Test AuditEventBuilder.allowance_reset."""
        correlation_id = uuid4()
        ts = datetime(2025, 2, 1, tzinfo=timezone.utc)
        event = AuditEventBuilder.allowance_reset(
            tier_id="yearly",
            allowance=50,
            reason=ResetReason.TIER_SWITCH,
            previous_tier_id="monthly",
            purchase_timestamp=ts,
            renewal_timestamp=None,
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.ALLOWANCE_RESET
        assert event.correlation_id == correlation_id
        assert event.details["reason"] == "tier_switch"
        assert event.details["purchase_timestamp"] == ts.isoformat()
        assert event.details["renewal_timestamp"] is None

    def test_persistence_failed_is_error(self):
        """Test AuditEventBuilder.persistence_failed."""
        event = AuditEventBuilder.persistence_failed("save_tier_balance", "boom", "monthly")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "boom"
        assert event.entity_type == "tier"

    def test_long_tier_id_truncates_description(self):
        """Oversized ids shorten the description instead of failing."""
        event = AuditEventBuilder.allowance_granted("t" * 600, 50, None)
        assert len(event.description) == 500
        assert event.description.endswith("...")
        assert event.entity_id == "t" * 600


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
