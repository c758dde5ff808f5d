"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a remote storage backend because:
1. Support staff can inspect a user's allowance state directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No transactions (the tracker is the single writer, so rows never race)
- Limited query capabilities (we scan rows in Python)

Worksheets:
- Allowances: one row per tier
- TrackerState: header plus exactly one data row
- AuditLog: append-only
"""

import json
from datetime import datetime
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from memoir_billing.config import GoogleSheetsSettings, get_settings
from memoir_billing.models.audit import AuditEvent, AuditEventType, AuditSeverity
from memoir_billing.models.subscription import TierBalance, TrackerState
from memoir_billing.services.storage.interface import (
    AllowanceStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    CorruptRecordError,
    StorageError,
)


ALLOWANCE_COLUMNS = [
    "tier_id",
    "remaining_allowance",
    "last_renewal_timestamp",
    "updated_at",
]

STATE_COLUMNS = [
    "active_tier_id",
    "initialized_tiers_json",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_allowances_sheet(self) -> gspread.Worksheet:
        """Get or create the Allowances worksheet."""
        return self._get_or_create(
            self._settings.allowances_sheet_name, ALLOWANCE_COLUMNS, rows=100
        )

    def get_state_sheet(self) -> gspread.Worksheet:
        """Get or create the TrackerState worksheet."""
        return self._get_or_create(
            self._settings.state_sheet_name, STATE_COLUMNS, rows=10
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _write_row(sheet: gspread.Worksheet, row_number: int, values: list) -> None:
    for col_idx, value in enumerate(values, start=1):
        sheet.update_cell(row_number, col_idx, value)


class GoogleSheetsAllowanceStorage(AllowanceStorageInterface):
    """
    Google Sheets implementation of allowance storage.

    Balances are upserted by tier_id (column A).
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _balance_to_row(self, balance: TierBalance) -> list:
        return [
            balance.tier_id,
            str(balance.remaining_allowance),
            balance.last_renewal_timestamp.isoformat() if balance.last_renewal_timestamp else "",
            balance.updated_at.isoformat(),
        ]

    def _row_to_balance(self, row: list) -> TierBalance:
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        try:
            updated_at = safe_get(3)
            return TierBalance(
                tier_id=safe_get(0),
                remaining_allowance=int(safe_get(1)),
                last_renewal_timestamp=(
                    datetime.fromisoformat(safe_get(2)) if safe_get(2) else None
                ),
                **({"updated_at": datetime.fromisoformat(updated_at)} if updated_at else {}),
            )
        except ValueError as e:
            raise CorruptRecordError(f"Malformed allowance row {row!r}: {e}")

    async def load_tier_balance(self, tier_id: str) -> Optional[TierBalance]:
        try:
            sheet = self._client.get_allowances_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to read allowances: {e}")

        for row in all_rows:
            if row and row[0] == tier_id:
                return self._row_to_balance(row)
        return None

    async def save_tier_balance(self, balance: TierBalance) -> bool:
        try:
            sheet = self._client.get_allowances_sheet()
            all_rows = sheet.get_all_values()
            new_row = self._balance_to_row(balance)

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == balance.tier_id:
                    _write_row(sheet, idx, new_row)
                    return True

            sheet.append_row(new_row, value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save allowance for {balance.tier_id}: {e}")

    async def load_tracker_state(self) -> Optional[TrackerState]:
        try:
            sheet = self._client.get_state_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read tracker state: {e}")

        if not all_rows or not any(all_rows[0]):
            return None

        row = all_rows[0]
        try:
            active_tier_id = row[0] or None
            tiers_json = row[1] if len(row) > 1 and row[1] else "[]"
            tiers = json.loads(tiers_json)
            if not isinstance(tiers, list):
                raise ValueError("initialized tiers must be a list")
            return TrackerState(
                active_tier_id=active_tier_id,
                initialized_tiers=set(tiers),
            )
        except (ValueError, TypeError) as e:
            raise CorruptRecordError(f"Malformed tracker state row {row!r}: {e}")

    async def save_tracker_state(self, state: TrackerState) -> bool:
        try:
            sheet = self._client.get_state_sheet()
            all_rows = sheet.get_all_values()
            new_row = [
                state.active_tier_id or "",
                json.dumps(sorted(state.initialized_tiers)),
            ]
            if len(all_rows) > 1:
                _write_row(sheet, 2, new_row)
            else:
                sheet.append_row(new_row, value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save tracker state: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=safe_get(0),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=safe_get(6) or None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue  # Skip malformed rows
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
