"""Billing platform client package."""

from memoir_billing.services.billing.revenuecat import (
    BillingAPIError,
    BillingConfigurationError,
    BillingError,
    RevenueCatClient,
    parse_timestamp,
)

__all__ = [
    "BillingAPIError",
    "BillingConfigurationError",
    "BillingError",
    "RevenueCatClient",
    "parse_timestamp",
]
