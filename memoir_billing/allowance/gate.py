"""
Generation Gate

Wraps a paid action (e.g., generating an illustration) with the allowance
check. Credits are spent only after the action has irreversibly happened:
check first, act, then consume. There is no rollback step.
"""

from typing import Awaitable, Callable, Optional, TypeVar

from memoir_billing.allowance.tracker import AllowanceTracker
from memoir_billing.audit import AuditLogger, get_logger
from memoir_billing.models.audit import AuditEventBuilder


T = TypeVar("T")


class InsufficientAllowanceError(Exception):
    """Not enough credits (or no active tier) for the requested action."""

    def __init__(self, requested: int, remaining: int, tier_id: Optional[str]):
        self.requested = requested
        self.remaining = remaining
        self.tier_id = tier_id
        super().__init__(
            f"Requested {requested} credits but only {remaining} remain"
            + ("" if tier_id else " (no active subscription)")
        )


class GenerationGate:
    """Check-act-consume helper for credit-spending call sites."""

    def __init__(
        self,
        tracker: AllowanceTracker,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._tracker = tracker
        self._audit_logger = audit_logger or AuditLogger()
        self._logger = get_logger(__name__)

    async def check(self, pages: int) -> bool:
        """Return whether `pages` credits may be spent; refusals are audited."""
        if self._tracker.can_consume(pages):
            return True

        snapshot = self._tracker.query()
        await self._audit_logger.log(
            AuditEventBuilder.generation_refused(
                tier_id=snapshot.active_tier_id,
                requested=pages,
                remaining=snapshot.remaining_allowance,
            )
        )
        return False

    async def run(self, pages: int, action: Callable[[], Awaitable[T]]) -> T:
        """
        Run `action` if `pages` credits are available, then spend them.

        Raises:
            InsufficientAllowanceError: Before the action runs, if refused.
            Any exception raised by `action` propagates and nothing is spent.
        """
        if not await self.check(pages):
            snapshot = self._tracker.query()
            raise InsufficientAllowanceError(
                requested=pages,
                remaining=snapshot.remaining_allowance,
                tier_id=snapshot.active_tier_id,
            )

        result = await action()
        await self._tracker.consume(pages)
        self._logger.info("generation_completed", pages=pages)
        return result
