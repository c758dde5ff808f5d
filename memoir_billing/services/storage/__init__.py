"""
Storage Services Package

Provides abstract interfaces and concrete implementations for allowance
and audit storage. The backend is chosen at wiring time.
"""

from memoir_billing.services.storage.interface import (
    AllowanceStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    CorruptRecordError,
    NotFoundError,
    StorageError,
)
from memoir_billing.services.storage.memory import (
    InMemoryAllowanceStorage,
    InMemoryAuditStorage,
)
from memoir_billing.services.storage.json_file import JsonFileAllowanceStorage
from memoir_billing.services.storage.google_sheets import (
    GoogleSheetsAllowanceStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)

__all__ = [
    # Interfaces
    "AllowanceStorageInterface",
    "AuditStorageInterface",
    # Exceptions
    "ConnectionError",
    "CorruptRecordError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAllowanceStorage",
    "InMemoryAuditStorage",
    # File implementation
    "JsonFileAllowanceStorage",
    # Google Sheets implementation
    "GoogleSheetsAllowanceStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
]
