"""
Main Orchestrator for Memoir Billing

This module ties together all the components:
1. Storage (memory, device-local JSON file or Google Sheets)
2. Audit logging
3. Allowance tracker, generation gate and entitlement sync
4. RevenueCat client (when an API key is configured)

DESIGN DECISION: Components are built once here and passed explicitly.
Nothing in the package reaches for a global instance, so tests can wire
an in-memory store instead.
"""

from dataclasses import dataclass
from typing import Optional

from memoir_billing.allowance import AllowanceTracker, EntitlementSync, GenerationGate
from memoir_billing.audit import AuditLogger, get_logger
from memoir_billing.config import Settings, StorageBackend, get_settings
from memoir_billing.services.billing import RevenueCatClient
from memoir_billing.services.storage import (
    AllowanceStorageInterface,
    GoogleSheetsAllowanceStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAllowanceStorage,
    JsonFileAllowanceStorage,
)


logger = get_logger(__name__)


@dataclass
class AppComponents:
    """Everything a caller needs to track and spend credits."""

    tracker: AllowanceTracker
    gate: GenerationGate
    sync: EntitlementSync
    audit_logger: AuditLogger
    billing_client: Optional[RevenueCatClient] = None
    sheets_client: Optional[GoogleSheetsClient] = None


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[AllowanceStorageInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (defaults to get_settings()).
        storage: Explicit allowance storage; overrides the configured backend.

    The tracker is returned unloaded; call `await components.tracker.load()`
    before first use.
    """
    settings = settings or get_settings()
    allowance_settings = settings.allowance
    revenuecat_settings = settings.revenuecat

    sheets_client = None
    audit_logger = AuditLogger()  # Local-only logging

    if storage is None:
        backend = allowance_settings.storage_backend
        if backend == StorageBackend.GOOGLE_SHEETS:
            try:
                sheets_client = GoogleSheetsClient(settings.google_sheets)
                storage = GoogleSheetsAllowanceStorage(sheets_client)
                audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
            except Exception as e:
                # Storage not configured - continue in memory
                logger.warning("storage_not_configured", backend=backend.value, error=str(e))
                sheets_client = None
                storage = InMemoryAllowanceStorage()
        elif backend == StorageBackend.JSON:
            storage = JsonFileAllowanceStorage(allowance_settings.json_path)
        else:
            storage = InMemoryAllowanceStorage()

    tracker = AllowanceTracker(
        storage=storage,
        audit_logger=audit_logger,
        max_allowance_per_period=allowance_settings.max_per_period,
    )

    billing_client = None
    if revenuecat_settings.api_key:
        billing_client = RevenueCatClient(revenuecat_settings)
    else:
        logger.warning("revenuecat_not_configured")

    sync = EntitlementSync(
        tracker=tracker,
        product_tier_map=revenuecat_settings.product_tier_map,
        tier_priority=revenuecat_settings.tier_priority,
        billing_client=billing_client,
        audit_logger=audit_logger,
    )

    return AppComponents(
        tracker=tracker,
        gate=GenerationGate(tracker, audit_logger=audit_logger),
        sync=sync,
        audit_logger=audit_logger,
        billing_client=billing_client,
        sheets_client=sheets_client,
    )
