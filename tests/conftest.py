"""Shared fixtures. No network, no real storage backends."""

import pytest

from memoir_billing.allowance import AllowanceTracker
from memoir_billing.audit import AuditLogger
from memoir_billing.services.storage import (
    InMemoryAllowanceStorage,
    InMemoryAuditStorage,
    StorageError,
)


class FailingAllowanceStorage(InMemoryAllowanceStorage):
    """Storage whose every operation fails."""

    async def load_tier_balance(self, tier_id):
        raise StorageError("disk on fire")

    async def save_tier_balance(self, balance):
        raise StorageError("disk on fire")

    async def load_tracker_state(self):
        raise StorageError("disk on fire")

    async def save_tracker_state(self, state):
        raise StorageError("disk on fire")


@pytest.fixture
def storage():
    return InMemoryAllowanceStorage()


@pytest.fixture
def failing_storage():
    return FailingAllowanceStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def tracker(storage, audit_logger):
    return AllowanceTracker(storage=storage, audit_logger=audit_logger)
