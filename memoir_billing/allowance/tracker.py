"""
Allowance Tracker

Maintains a per-tier consumable credit balance that resets exactly once per
billing period, no matter how often entitlement state is refreshed.

A reset (balance restored to the full period amount) happens only when:
1. a tier is activated for the first time
2. the active tier changes from a previous, non-null tier
3. the billing platform reports a purchase timestamp strictly newer than
   the one already processed for that tier

DESIGN DECISION: The tracker is a total function over its inputs.
Storage is best-effort: failures are audited and swallowed, never retried,
and the in-memory state stays authoritative for the process lifetime. The
billing platform re-supplies entitlement on the next refresh.

Concurrency: every mutation runs under a single asyncio.Lock (single writer).
"""

import asyncio
from datetime import datetime
from typing import Optional
from uuid import UUID

from memoir_billing.audit import AuditLogger, get_logger
from memoir_billing.models.audit import AuditEventBuilder, ResetReason
from memoir_billing.models.subscription import (
    DEFAULT_MAX_ALLOWANCE_PER_PERIOD,
    AllowanceSnapshot,
    TierBalance,
    TrackerState,
    ensure_utc,
    utcnow,
)
from memoir_billing.services.storage import AllowanceStorageInterface


class AllowanceTracker:
    """
    Local credit meter layered over the billing platform's entitlement.

    Usage:
        tracker = AllowanceTracker(storage=InMemoryAllowanceStorage())
        await tracker.load()
        await tracker.apply_entitlement("monthly", purchase_timestamp=ts)
        if tracker.can_consume(1):
            ...  # perform the paid action
            await tracker.consume(1)
    """

    def __init__(
        self,
        storage: AllowanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        max_allowance_per_period: int = DEFAULT_MAX_ALLOWANCE_PER_PERIOD,
    ):
        if max_allowance_per_period < 0:
            raise ValueError("max_allowance_per_period must be >= 0")

        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._max = max_allowance_per_period
        self._lock = asyncio.Lock()
        self._logger = get_logger(__name__)

        # Fresh install: no tier, nothing to spend
        self._active_tier_id: Optional[str] = None
        self._remaining = 0
        self._initialized_tiers: set[str] = set()

        # Per-tier balances seen or written by this process
        self._balances: dict[str, TierBalance] = {}

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def active_tier_id(self) -> Optional[str]:
        return self._active_tier_id

    @property
    def remaining_allowance(self) -> int:
        return self._remaining

    @property
    def max_allowance_per_period(self) -> int:
        return self._max

    @property
    def initialized_tiers(self) -> frozenset[str]:
        return frozenset(self._initialized_tiers)

    def query(self) -> AllowanceSnapshot:
        """Read-only snapshot of the meter."""
        return AllowanceSnapshot(
            active_tier_id=self._active_tier_id,
            remaining_allowance=self._remaining,
            max_allowance_per_period=self._max,
        )

    def can_consume(self, amount: int) -> bool:
        """
        Check whether `amount` credits can be spent.

        Non-positive amounts are always allowed; without an active tier
        nothing can be spent.
        """
        if amount <= 0:
            return True
        if self._active_tier_id is None:
            return False
        return self._remaining >= amount

    # -------------------------------------------------------------------------
    # Write side
    # -------------------------------------------------------------------------

    async def load(self) -> AllowanceSnapshot:
        """
        Restore persisted state at process start.

        Missing or corrupt data leaves the tracker in its fresh state.
        """
        async with self._lock:
            state = await self._load_tracker_state()
            if state is None:
                return self.query()

            self._initialized_tiers = set(state.initialized_tiers)
            self._active_tier_id = state.active_tier_id

            if self._active_tier_id is not None:
                balance = await self._get_balance(self._active_tier_id)
                if balance is None:
                    # Fail open toward the user
                    self._remaining = self._max
                else:
                    self._remaining = min(balance.remaining_allowance, self._max)
            else:
                self._remaining = 0

            self._logger.info(
                "allowance_state_loaded",
                active_tier_id=self._active_tier_id,
                remaining=self._remaining,
                initialized_tiers=sorted(self._initialized_tiers),
            )
            return self.query()

    async def apply_entitlement(
        self,
        tier_id: str,
        renewal_timestamp: Optional[datetime] = None,
        purchase_timestamp: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AllowanceSnapshot:
        """
        Apply an active entitlement for `tier_id`.

        renewal_timestamp is recorded in the audit trail only; reset
        detection is driven by purchase_timestamp.
        """
        renewal_timestamp = ensure_utc(renewal_timestamp)
        purchase_timestamp = ensure_utc(purchase_timestamp)

        async with self._lock:
            previous_tier_id = self._active_tier_id

            if tier_id not in self._initialized_tiers:
                self._initialized_tiers.add(tier_id)
                self._remaining = self._max
                self._active_tier_id = tier_id
                await self._save_balance(tier_id, self._max, purchase_timestamp)
                await self._save_tracker_state()
                await self._audit_logger.log(
                    AuditEventBuilder.allowance_granted(
                        tier_id=tier_id,
                        allowance=self._max,
                        purchase_timestamp=purchase_timestamp,
                        correlation_id=correlation_id,
                    )
                )
                return self.query()

            stored = await self._get_balance(tier_id)
            stored_timestamp = stored.last_renewal_timestamp if stored else None

            reason: Optional[ResetReason] = None
            if purchase_timestamp is not None and (
                stored_timestamp is None or purchase_timestamp > stored_timestamp
            ):
                reason = ResetReason.RENEWAL
            elif previous_tier_id is not None and previous_tier_id != tier_id:
                reason = ResetReason.TIER_SWITCH

            if reason is not None:
                self._remaining = self._max
                await self._save_balance(
                    tier_id,
                    self._max,
                    purchase_timestamp if purchase_timestamp is not None else stored_timestamp,
                )
                await self._audit_logger.log(
                    AuditEventBuilder.allowance_reset(
                        tier_id=tier_id,
                        allowance=self._max,
                        reason=reason,
                        previous_tier_id=previous_tier_id,
                        purchase_timestamp=purchase_timestamp,
                        renewal_timestamp=renewal_timestamp,
                        correlation_id=correlation_id,
                    )
                )
            elif stored is None:
                # Missing or corrupt record: full grant
                self._remaining = self._max
                await self._save_balance(tier_id, self._max, None)
                await self._audit_logger.log(
                    AuditEventBuilder.allowance_restored(
                        tier_id=tier_id,
                        remaining=self._remaining,
                        from_storage=False,
                        correlation_id=correlation_id,
                    )
                )
            else:
                self._remaining = min(stored.remaining_allowance, self._max)
                await self._audit_logger.log(
                    AuditEventBuilder.allowance_restored(
                        tier_id=tier_id,
                        remaining=self._remaining,
                        from_storage=True,
                        correlation_id=correlation_id,
                    )
                )

            self._active_tier_id = tier_id
            if previous_tier_id != tier_id:
                await self._save_tracker_state()
            return self.query()

    async def clear_entitlement(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> AllowanceSnapshot:
        """
        Drop the active entitlement.

        Per-tier balances are kept for reactivation.
        """
        async with self._lock:
            previous_tier_id = self._active_tier_id
            self._active_tier_id = None
            self._remaining = 0
            await self._save_tracker_state()
            await self._audit_logger.log(
                AuditEventBuilder.entitlement_cleared(
                    previous_tier_id=previous_tier_id,
                    correlation_id=correlation_id,
                )
            )
            return self.query()

    async def consume(self, amount: int) -> AllowanceSnapshot:
        """
        Spend `amount` credits from the active tier.

        The balance floors at zero. Callers are expected to check
        can_consume() first; this method never refuses a completed action.
        """
        if amount <= 0:
            self._logger.debug("consume_ignored", amount=amount, reason="non_positive_amount")
            return self.query()

        async with self._lock:
            tier_id = self._active_tier_id
            if tier_id is None:
                await self._audit_logger.log(
                    AuditEventBuilder.consume_ignored(amount=amount, reason="no_active_tier")
                )
                return self.query()

            self._remaining = max(0, self._remaining - amount)
            cached = self._balances.get(tier_id)
            await self._save_balance(
                tier_id,
                self._remaining,
                cached.last_renewal_timestamp if cached else None,
            )
            await self._audit_logger.log(
                AuditEventBuilder.allowance_consumed(
                    tier_id=tier_id,
                    amount=amount,
                    remaining=self._remaining,
                )
            )
            return self.query()

    # -------------------------------------------------------------------------
    # Best-effort persistence (caller holds the lock)
    # -------------------------------------------------------------------------

    async def _get_balance(self, tier_id: str) -> Optional[TierBalance]:
        cached = self._balances.get(tier_id)
        if cached is not None:
            return cached

        try:
            balance = await self._storage.load_tier_balance(tier_id)
        except Exception as e:
            await self._persistence_failed("load_tier_balance", e, tier_id)
            return None

        if balance is not None:
            self._balances[tier_id] = balance
        return balance

    async def _save_balance(
        self,
        tier_id: str,
        remaining: int,
        last_renewal_timestamp: Optional[datetime],
    ) -> None:
        try:
            balance = TierBalance(
                tier_id=tier_id,
                remaining_allowance=remaining,
                last_renewal_timestamp=last_renewal_timestamp,
                updated_at=utcnow(),
            )
            self._balances[tier_id] = balance
            await self._storage.save_tier_balance(balance)
        except Exception as e:
            await self._persistence_failed("save_tier_balance", e, tier_id)

    async def _load_tracker_state(self) -> Optional[TrackerState]:
        try:
            return await self._storage.load_tracker_state()
        except Exception as e:
            await self._persistence_failed("load_tracker_state", e)
            return None

    async def _save_tracker_state(self) -> None:
        try:
            state = TrackerState(
                active_tier_id=self._active_tier_id,
                initialized_tiers=set(self._initialized_tiers),
            )
            await self._storage.save_tracker_state(state)
        except Exception as e:
            await self._persistence_failed("save_tracker_state", e)

    async def _persistence_failed(
        self,
        operation: str,
        error: Exception,
        tier_id: Optional[str] = None,
    ) -> None:
        await self._audit_logger.log(
            AuditEventBuilder.persistence_failed(
                operation=operation,
                error_message=str(error),
                tier_id=tier_id,
            )
        )
