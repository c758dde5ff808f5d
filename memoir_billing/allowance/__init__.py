"""Allowance tracking package."""

from memoir_billing.allowance.tracker import AllowanceTracker
from memoir_billing.allowance.entitlements import DEFAULT_TIER_PRIORITY, EntitlementSync
from memoir_billing.allowance.gate import GenerationGate, InsufficientAllowanceError

__all__ = [
    "AllowanceTracker",
    "DEFAULT_TIER_PRIORITY",
    "EntitlementSync",
    "GenerationGate",
    "InsufficientAllowanceError",
]
