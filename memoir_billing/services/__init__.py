"""Services package."""

from memoir_billing.services.billing import (
    BillingAPIError,
    BillingConfigurationError,
    BillingError,
    RevenueCatClient,
)
from memoir_billing.services.storage import (
    AllowanceStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    CorruptRecordError,
    GoogleSheetsAllowanceStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAllowanceStorage,
    InMemoryAuditStorage,
    JsonFileAllowanceStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Billing
    "BillingAPIError",
    "BillingConfigurationError",
    "BillingError",
    "RevenueCatClient",
    # Storage services
    "AllowanceStorageInterface",
    "AuditStorageInterface",
    "ConnectionError",
    "CorruptRecordError",
    "GoogleSheetsAllowanceStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "InMemoryAllowanceStorage",
    "InMemoryAuditStorage",
    "JsonFileAllowanceStorage",
    "NotFoundError",
    "StorageError",
]
