"""Tests for GenerationGate: check, act, then consume."""

from datetime import datetime, timezone

import pytest

from memoir_billing.allowance import GenerationGate, InsufficientAllowanceError
from memoir_billing.models.audit import AuditEventType


T1 = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def gate(tracker, audit_logger):
    return GenerationGate(tracker, audit_logger=audit_logger)


class TestGenerationGate:

    async def test_successful_action_consumes_after(self, gate, tracker):
        await tracker.apply_entitlement("monthly", purchase_timestamp=T1)
        seen = []

        async def generate():
            seen.append(tracker.remaining_allowance)
            return "page.png"

        result = await gate.run(3, generate)
        assert result == "page.png"
        assert seen == [50]  # nothing spent while the action ran
        assert tracker.remaining_allowance == 47

    async def test_failed_action_consumes_nothing(self, gate, tracker):
        await tracker.apply_entitlement("monthly", purchase_timestamp=T1)

        async def generate():
            raise RuntimeError("image service down")

        with pytest.raises(RuntimeError, match="image service down"):
            await gate.run(3, generate)
        assert tracker.remaining_allowance == 50

    async def test_refusal_raises_before_action(self, gate, tracker, audit_storage):
        await tracker.apply_entitlement("monthly", purchase_timestamp=T1)
        called = False

        async def generate():
            nonlocal called
            called = True

        with pytest.raises(InsufficientAllowanceError) as exc_info:
            await gate.run(60, generate)

        assert called is False
        assert exc_info.value.requested == 60
        assert exc_info.value.remaining == 50
        assert exc_info.value.tier_id == "monthly"
        assert audit_storage.events[-1].event_type == AuditEventType.GENERATION_REFUSED

    async def test_refused_without_subscription(self, gate):
        assert await gate.check(1) is False
        with pytest.raises(InsufficientAllowanceError, match="no active subscription"):
            await gate.run(1, lambda: None)

    async def test_check_allows_exact_balance(self, gate, tracker):
        await tracker.apply_entitlement("monthly", purchase_timestamp=T1)
        assert await gate.check(50) is True
