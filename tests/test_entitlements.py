"""Tests for EntitlementSync: product mapping, priority and billing refresh."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from memoir_billing.allowance import EntitlementSync
from memoir_billing.models.audit import AuditEventType
from memoir_billing.models.subscription import EntitlementEvent
from memoir_billing.services.billing import BillingAPIError


T1 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
T2 = datetime(2025, 2, 1, 12, 0, tzinfo=timezone.utc)
EXPIRES = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sync(tracker, audit_logger):
    return EntitlementSync(tracker=tracker, audit_logger=audit_logger)


def monthly(purchased=T1, active=True):
    return EntitlementEvent(
        product_id="plan.monthly",
        is_active=active,
        expiration_date=EXPIRES,
        latest_purchase_date=purchased,
    )


def yearly(purchased=T1, active=True):
    return EntitlementEvent(
        product_id="plan.yearly",
        is_active=active,
        expiration_date=EXPIRES,
        latest_purchase_date=purchased,
    )


class TestProductMapping:
    """Static product -> tier lookup."""

    def test_default_map(self, sync):
        assert sync.resolve_tier("plan.monthly") == "monthly"
        assert sync.resolve_tier("plan.yearly") == "yearly"
        assert sync.resolve_tier("plan.weekly") is None

    def test_custom_map(self, tracker):
        sync = EntitlementSync(
            tracker=tracker,
            product_tier_map={"com.memoir.Monthly": "basic"},
        )
        assert sync.resolve_tier("com.memoir.Monthly") == "basic"
        assert sync.resolve_tier("plan.monthly") is None


class TestHandleEvent:
    """One call per received entitlement event."""

    async def test_active_event_applies_entitlement(self, sync, tracker):
        snapshot = await sync.handle_event(monthly())
        assert snapshot.active_tier_id == "monthly"
        assert snapshot.remaining_allowance == 50

    async def test_repeated_event_does_not_reset(self, sync, tracker):
        await sync.handle_event(monthly())
        await tracker.consume(12)
        snapshot = await sync.handle_event(monthly())
        assert snapshot.remaining_allowance == 38

    async def test_renewal_event_resets(self, sync, tracker):
        await sync.handle_event(monthly(purchased=T1))
        await tracker.consume(12)
        snapshot = await sync.handle_event(monthly(purchased=T2))
        assert snapshot.remaining_allowance == 50

    async def test_inactive_event_clears(self, sync):
        await sync.handle_event(monthly())
        snapshot = await sync.handle_event(monthly(active=False))
        assert snapshot.active_tier_id is None
        assert snapshot.remaining_allowance == 0

    async def test_expiry_of_other_plan_keeps_active_tier(self, sync, tracker):
        await sync.handle_event(monthly())
        await sync.handle_event(yearly(purchased=T2))
        await tracker.consume(5)

        snapshot = await sync.handle_event(monthly(active=False))
        assert snapshot.active_tier_id == "yearly"
        assert snapshot.remaining_allowance == 45
        assert tracker.can_consume(1) is True

    async def test_inactive_unmapped_product_clears(self, sync):
        await sync.handle_event(monthly())
        snapshot = await sync.handle_event(
            EntitlementEvent(product_id="plan.lifetime", is_active=False)
        )
        assert snapshot.active_tier_id is None

    async def test_unmapped_product_clears_and_audits(self, sync, audit_storage):
        await sync.handle_event(monthly())
        snapshot = await sync.handle_event(EntitlementEvent(product_id="plan.lifetime"))
        assert snapshot.active_tier_id is None

        event_types = [e.event_type for e in audit_storage.events]
        assert AuditEventType.ENTITLEMENT_UNMAPPED in event_types
        assert event_types[-1] == AuditEventType.ENTITLEMENT_CLEARED


class TestHandleCustomerInfo:
    """Choosing one tier out of everything the platform reports."""

    async def test_yearly_wins_over_monthly(self, sync):
        snapshot = await sync.handle_customer_info([monthly(), yearly()])
        assert snapshot.active_tier_id == "yearly"

    async def test_custom_priority_order(self, tracker):
        sync = EntitlementSync(
            tracker=tracker,
            product_tier_map={
                "com.memoir.Basic": "basic",
                "com.memoir.Premium": "premium",
                "com.memoir.Pro": "pro",
            },
            tier_priority=["pro", "premium", "basic"],
        )
        snapshot = await sync.handle_customer_info([
            EntitlementEvent(product_id="com.memoir.Basic", latest_purchase_date=T2),
            EntitlementEvent(product_id="com.memoir.Pro", latest_purchase_date=T1),
            EntitlementEvent(product_id="com.memoir.Premium", latest_purchase_date=T2),
        ])
        assert snapshot.active_tier_id == "pro"

    async def test_inactive_entries_are_skipped(self, sync):
        snapshot = await sync.handle_customer_info([monthly(), yearly(active=False)])
        assert snapshot.active_tier_id == "monthly"

    async def test_latest_purchase_wins_within_tier(self, sync, tracker):
        await sync.handle_customer_info([monthly(purchased=T1)])
        await tracker.consume(10)
        snapshot = await sync.handle_customer_info(
            [monthly(purchased=T1), monthly(purchased=T2)]
        )
        assert snapshot.remaining_allowance == 50

    async def test_nothing_active_clears(self, sync):
        await sync.handle_customer_info([monthly()])
        snapshot = await sync.handle_customer_info([])
        assert snapshot.active_tier_id is None
        assert snapshot.remaining_allowance == 0

    async def test_only_unmapped_clears(self, sync, audit_storage):
        snapshot = await sync.handle_customer_info(
            [EntitlementEvent(product_id="plan.lifetime")]
        )
        assert snapshot.active_tier_id is None
        assert any(
            e.event_type == AuditEventType.ENTITLEMENT_UNMAPPED for e in audit_storage.events
        )


class TestRefresh:
    """Pulling entitlements from the billing client."""

    async def test_refresh_applies_fetched_entitlements(self, tracker, audit_logger):
        client = AsyncMock()
        client.get_entitlement_events.return_value = [monthly()]
        sync = EntitlementSync(tracker=tracker, billing_client=client, audit_logger=audit_logger)

        snapshot = await sync.refresh("user-1")
        client.get_entitlement_events.assert_awaited_once_with("user-1")
        assert snapshot.active_tier_id == "monthly"

    async def test_refresh_failure_clears_entitlement(self, tracker, audit_logger, audit_storage):
        client = AsyncMock()
        client.get_entitlement_events.side_effect = BillingAPIError(500, "boom")
        sync = EntitlementSync(tracker=tracker, billing_client=client, audit_logger=audit_logger)

        await tracker.apply_entitlement("monthly", purchase_timestamp=T1)
        snapshot = await sync.refresh("user-1")
        assert snapshot.active_tier_id is None

        failed = [
            e for e in audit_storage.events
            if e.event_type == AuditEventType.BILLING_FETCH_FAILED
        ]
        assert len(failed) == 1
        assert failed[0].correlation_id is not None

    async def test_refresh_without_client_is_noop(self, sync, tracker):
        await tracker.apply_entitlement("monthly", purchase_timestamp=T1)
        snapshot = await sync.refresh("user-1")
        assert snapshot.active_tier_id == "monthly"
        assert snapshot.remaining_allowance == 50
