"""
JSON File Storage Implementation

Device-local key-value storage for allowance state. A single JSON document
holds everything:

    {
        "tracker_state": {"active_tier_id": "...", "initialized_tiers": [...]},
        "tiers": {"monthly": {"remaining_allowance": 38, ...}, ...}
    }

Writes go to a temporary file which then replaces the original, so a crash
mid-write leaves the previous document intact.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from memoir_billing.models.subscription import TierBalance, TrackerState
from memoir_billing.services.storage.interface import (
    AllowanceStorageInterface,
    CorruptRecordError,
    StorageError,
)


class JsonFileAllowanceStorage(AllowanceStorageInterface):
    """
    File-backed allowance storage.

    A missing file means "nothing persisted yet". An unreadable document
    raises CorruptRecordError on load and is replaced on the next save.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise CorruptRecordError(f"Could not read {self._path}: {e}")
        if not isinstance(data, dict):
            raise CorruptRecordError(f"Unexpected document in {self._path}")
        return data

    def _read_for_update(self) -> dict[str, Any]:
        try:
            return self._read()
        except CorruptRecordError:
            # Corrupt content is treated as uninitialized and overwritten
            return {}

    def _write(self, data: dict[str, Any]) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StorageError(f"Failed to write {self._path}: {e}")

    async def load_tier_balance(self, tier_id: str) -> Optional[TierBalance]:
        tiers = self._read().get("tiers") or {}
        if not isinstance(tiers, dict):
            raise CorruptRecordError("'tiers' is not an object")
        record = tiers.get(tier_id)
        if record is None:
            return None
        try:
            return TierBalance(tier_id=tier_id, **record)
        except (TypeError, ValidationError) as e:
            raise CorruptRecordError(f"Invalid balance for {tier_id}: {e}")

    async def save_tier_balance(self, balance: TierBalance) -> bool:
        data = self._read_for_update()
        tiers = data.get("tiers")
        if not isinstance(tiers, dict):
            tiers = {}
        tiers[balance.tier_id] = balance.model_dump(mode="json", exclude={"tier_id"})
        data["tiers"] = tiers
        self._write(data)
        return True

    async def load_tracker_state(self) -> Optional[TrackerState]:
        record = self._read().get("tracker_state")
        if record is None:
            return None
        try:
            return TrackerState.model_validate(record)
        except ValidationError as e:
            raise CorruptRecordError(f"Invalid tracker state: {e}")

    async def save_tracker_state(self, state: TrackerState) -> bool:
        data = self._read_for_update()
        data["tracker_state"] = {
            "active_tier_id": state.active_tier_id,
            "initialized_tiers": sorted(state.initialized_tiers),
        }
        self._write(data)
        return True
