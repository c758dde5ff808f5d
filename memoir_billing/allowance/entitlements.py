"""
Entitlement Sync

Feeds billing platform entitlement events into the allowance tracker.

Each store product identifier is mapped to a local tier through a static
lookup table. Unmapped products are treated as "no entitlement recognized".
When the platform reports several active entitlements at once, the tier
with the highest priority wins.
"""

from typing import Iterable, Optional, Sequence
from uuid import UUID

from memoir_billing.allowance.tracker import AllowanceTracker
from memoir_billing.audit import AuditLogger, create_correlation_id, get_logger
from memoir_billing.config import DEFAULT_PRODUCT_TIER_MAP, DEFAULT_TIER_PRIORITY
from memoir_billing.models.audit import AuditEventBuilder
from memoir_billing.models.subscription import AllowanceSnapshot, EntitlementEvent
from memoir_billing.services.billing import RevenueCatClient


class EntitlementSync:
    """Maps billing platform entitlements onto AllowanceTracker calls."""

    def __init__(
        self,
        tracker: AllowanceTracker,
        product_tier_map: Optional[dict[str, str]] = None,
        billing_client: Optional[RevenueCatClient] = None,
        audit_logger: Optional[AuditLogger] = None,
        tier_priority: Sequence[str] = DEFAULT_TIER_PRIORITY,
    ):
        self._tracker = tracker
        self._product_tier_map = dict(
            product_tier_map if product_tier_map is not None else DEFAULT_PRODUCT_TIER_MAP
        )
        self._billing_client = billing_client
        self._audit_logger = audit_logger or AuditLogger()
        self._tier_priority = list(tier_priority)
        self._logger = get_logger(__name__)

        unranked = set(self._product_tier_map.values()) - set(self._tier_priority)
        if unranked:
            self._logger.warning("unranked_tiers", tiers=sorted(unranked))

    def resolve_tier(self, product_id: str) -> Optional[str]:
        """Map a store product identifier to a local tier, or None if unknown."""
        return self._product_tier_map.get(product_id)

    def _rank(self, tier_id: str) -> int:
        try:
            return self._tier_priority.index(tier_id)
        except ValueError:
            return len(self._tier_priority)

    async def handle_event(
        self,
        event: EntitlementEvent,
        correlation_id: Optional[UUID] = None,
    ) -> AllowanceSnapshot:
        """
        Apply a single "entitlement changed" event.

        An inactive event only clears the tracker when it concerns the
        active tier; expiry of some other plan leaves it untouched.
        """
        tier_id = self.resolve_tier(event.product_id)

        if not event.is_active and tier_id is not None:
            if tier_id != self._tracker.active_tier_id:
                self._logger.info(
                    "inactive_entitlement_ignored",
                    tier_id=tier_id,
                    product_id=event.product_id,
                    active_tier_id=self._tracker.active_tier_id,
                )
                return self._tracker.query()
            return await self._tracker.clear_entitlement(correlation_id=correlation_id)

        if tier_id is None:
            await self._audit_logger.log(
                AuditEventBuilder.entitlement_unmapped(
                    product_id=event.product_id,
                    correlation_id=correlation_id,
                )
            )
            return await self._tracker.clear_entitlement(correlation_id=correlation_id)

        return await self._tracker.apply_entitlement(
            tier_id,
            renewal_timestamp=event.expiration_date,
            purchase_timestamp=event.latest_purchase_date,
            correlation_id=correlation_id,
        )

    async def handle_customer_info(
        self,
        events: Iterable[EntitlementEvent],
        correlation_id: Optional[UUID] = None,
    ) -> AllowanceSnapshot:
        """
        Apply the full set of entitlements currently reported for a user.

        Picks the highest-priority active, mapped tier; clears the
        entitlement when there is none.
        """
        candidates: list[tuple[str, EntitlementEvent]] = []
        for event in events:
            if not event.is_active:
                continue
            tier_id = self.resolve_tier(event.product_id)
            if tier_id is None:
                await self._audit_logger.log(
                    AuditEventBuilder.entitlement_unmapped(
                        product_id=event.product_id,
                        correlation_id=correlation_id,
                    )
                )
                continue
            candidates.append((tier_id, event))

        if not candidates:
            self._logger.info("no_active_entitlement")
            return await self._tracker.clear_entitlement(correlation_id=correlation_id)

        best_rank = min(self._rank(tier_id) for tier_id, _ in candidates)
        tier_id, event = max(
            (c for c in candidates if self._rank(c[0]) == best_rank),
            key=lambda c: (c[1].latest_purchase_date is not None, c[1].latest_purchase_date),
        )

        self._logger.info(
            "active_entitlement_found",
            tier_id=tier_id,
            product_id=event.product_id,
        )
        return await self._tracker.apply_entitlement(
            tier_id,
            renewal_timestamp=event.expiration_date,
            purchase_timestamp=event.latest_purchase_date,
            correlation_id=correlation_id,
        )

    async def refresh(self, app_user_id: str) -> AllowanceSnapshot:
        """
        Pull the user's entitlements from the billing platform and apply them.

        Without a billing client the tracker is left untouched. Any billing
        failure is treated as "not subscribed".
        """
        if self._billing_client is None:
            self._logger.warning("billing_not_configured", app_user_id=app_user_id)
            return self._tracker.query()

        correlation_id = create_correlation_id()
        try:
            events = await self._billing_client.get_entitlement_events(app_user_id)
        except Exception as e:
            await self._audit_logger.log(
                AuditEventBuilder.billing_fetch_failed(
                    service="revenuecat",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            )
            return await self._tracker.clear_entitlement(correlation_id=correlation_id)

        return await self.handle_customer_info(events, correlation_id=correlation_id)
