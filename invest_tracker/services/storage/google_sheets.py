"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the remote mirror because:
1. The owner can look at the ledger directly in a spreadsheet
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (the sync outbox applies operations strictly in order)
- Limited query capabilities (we filter in Python)

One worksheet per table: Settings, Investments, Returns,
ManualTransactions, Ledger, plus AuditLog for the audit trail.
Worksheets are created with a header row on first use.
"""

import json
from datetime import datetime
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from invest_tracker.config import GoogleSheetsSettings, get_settings
from invest_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from invest_tracker.models.ledger import (
    Investment,
    LedgerEntry,
    ManualTransaction,
    PoolSettings,
    ReturnRecord,
)
from invest_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerMirrorInterface,
    NotFoundError,
    StorageError,
)


SETTINGS_COLUMNS = ["total_money_pool", "setup_complete", "setup_date"]

INVESTMENT_COLUMNS = [
    "id",
    "date",
    "amount",
    "notes",
    "status",
    "expected_return",
]

RETURN_COLUMNS = [
    "id",
    "date",
    "amount",
    "expected",
    "warning",
    "investment_id",
    "investment_notes",
]

MANUAL_TRANSACTION_COLUMNS = [
    "id",
    "date",
    "type",
    "description",
    "amount",
    "source_type",
    "source_id",
]

LEDGER_COLUMNS = [
    "id",
    "date",
    "type",
    "description",
    "amount",
    "balance_after",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "description",
    "details_json",
    "error_message",
]


def _retrying():
    # A missing row will still be missing on the next attempt
    return retry(
        retry=retry_if_not_exception_type(NotFoundError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup with retry logic.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @_retrying()
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

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get a worksheet by title, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def settings_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.settings_sheet_name, SETTINGS_COLUMNS)

    def investments_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.investments_sheet_name, INVESTMENT_COLUMNS)

    def returns_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.returns_sheet_name, RETURN_COLUMNS)

    def manual_transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.manual_transactions_sheet_name,
            MANUAL_TRANSACTION_COLUMNS,
        )

    def ledger_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.ledger_sheet_name, LEDGER_COLUMNS)

    def audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS)


def _cell(row: list, index: int, default: str = "") -> str:
    """Handle missing columns gracefully."""
    try:
        return row[index] if row[index] != "" else default
    except IndexError:
        return default


def _data_rows(sheet: gspread.Worksheet) -> list[list]:
    """All rows except the header, skipping blank ones."""
    return [row for row in sheet.get_all_values()[1:] if row and row[0]]


class GoogleSheetsLedgerMirror(LedgerMirrorInterface):
    """
    Google Sheets implementation of the row mirror.

    Amounts are stored as decimal strings so nothing is lost to
    spreadsheet number formatting (rows are written RAW).
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -- row conversion -----------------------------------------------------

    @staticmethod
    def _investment_to_row(investment: Investment) -> list:
        return [
            investment.id,
            investment.date.isoformat(),
            str(investment.amount),
            investment.notes or "",
            investment.status.value,
            str(investment.expected_return),
        ]

    @staticmethod
    def _row_to_investment(row: list) -> dict:
        return {
            "id": _cell(row, 0),
            "date": _cell(row, 1),
            "amount": _cell(row, 2),
            "notes": _cell(row, 3) or None,
            "status": _cell(row, 4, "Active"),
            "expectedReturn": _cell(row, 5, "0"),
        }

    @staticmethod
    def _return_to_row(record: ReturnRecord) -> list:
        return [
            record.id,
            record.date.isoformat(),
            str(record.amount),
            str(record.expected),
            str(record.warning),
            record.investment_id or "",
            record.investment_notes,
        ]

    @staticmethod
    def _row_to_return(row: list) -> dict:
        return {
            "id": _cell(row, 0),
            "date": _cell(row, 1),
            "amount": _cell(row, 2, "0"),
            "expected": _cell(row, 3, "0"),
            "warning": _cell(row, 4).lower() == "true",
            "investmentId": _cell(row, 5) or None,
            "investmentNotes": _cell(row, 6, "Unknown"),
        }

    @staticmethod
    def _manual_transaction_to_row(transaction: ManualTransaction) -> list:
        return [
            transaction.id,
            transaction.date.isoformat(),
            transaction.type,
            transaction.description,
            str(transaction.amount),
            transaction.source_type.value,
            transaction.source_id or "",
        ]

    @staticmethod
    def _row_to_manual_transaction(row: list) -> dict:
        return {
            "id": _cell(row, 0),
            "date": _cell(row, 1),
            "type": _cell(row, 2),
            "description": _cell(row, 3),
            "amount": _cell(row, 4),
            "sourceType": _cell(row, 5, "general"),
            "sourceId": _cell(row, 6) or None,
        }

    @staticmethod
    def _ledger_entry_to_row(entry: LedgerEntry) -> list:
        return [
            entry.id,
            entry.date.isoformat(),
            entry.type,
            entry.description,
            str(entry.amount),
            str(entry.balance_after),
        ]

    @staticmethod
    def _row_to_ledger_entry(row: list) -> dict:
        return {
            "id": _cell(row, 0),
            "date": _cell(row, 1),
            "type": _cell(row, 2),
            "description": _cell(row, 3),
            "amount": _cell(row, 4, "0"),
            "balanceAfter": _cell(row, 5, "0"),
        }

    def _reset_sheet(self, sheet: gspread.Worksheet, columns: list[str]) -> None:
        sheet.clear()
        sheet.append_row(columns)

    # -- mirror operations --------------------------------------------------

    @_retrying()
    async def upsert_settings(
        self,
        total_money_pool: str,
        settings: PoolSettings,
    ) -> None:
        try:
            sheet = self._client.settings_sheet()
            self._reset_sheet(sheet, SETTINGS_COLUMNS)
            sheet.append_row(
                [
                    total_money_pool,
                    str(settings.setup_complete),
                    settings.setup_date.isoformat() if settings.setup_date else "",
                ],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to write settings: {e}")

    @_retrying()
    async def insert_investment(self, investment: Investment) -> None:
        try:
            sheet = self._client.investments_sheet()
            sheet.append_row(self._investment_to_row(investment), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save investment: {e}")

    @_retrying()
    async def update_investment(self, investment: Investment) -> None:
        try:
            sheet = self._client.investments_sheet()
            all_rows = sheet.get_all_values()

            # Row 1 is the header
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == investment.id:
                    sheet.update(
                        range_name=f"A{idx}",
                        values=[self._investment_to_row(investment)],
                        value_input_option="RAW",
                    )
                    return

            raise NotFoundError(f"Investment not found: {investment.id}")
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update investment: {e}")

    @_retrying()
    async def insert_return(self, record: ReturnRecord) -> None:
        try:
            sheet = self._client.returns_sheet()
            sheet.append_row(self._return_to_row(record), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save return: {e}")

    @_retrying()
    async def insert_manual_transaction(self, transaction: ManualTransaction) -> None:
        try:
            sheet = self._client.manual_transactions_sheet()
            sheet.append_row(
                self._manual_transaction_to_row(transaction),
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to save manual transaction: {e}")

    @_retrying()
    async def append_ledger_entry(self, entry: LedgerEntry) -> None:
        try:
            sheet = self._client.ledger_sheet()
            sheet.append_row(self._ledger_entry_to_row(entry), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to append ledger entry: {e}")

    @_retrying()
    async def clear_ledger(self) -> None:
        try:
            self._reset_sheet(self._client.ledger_sheet(), LEDGER_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to clear ledger: {e}")

    @_retrying()
    async def clear_all(self) -> None:
        try:
            self._reset_sheet(self._client.settings_sheet(), SETTINGS_COLUMNS)
            self._reset_sheet(self._client.investments_sheet(), INVESTMENT_COLUMNS)
            self._reset_sheet(self._client.returns_sheet(), RETURN_COLUMNS)
            self._reset_sheet(
                self._client.manual_transactions_sheet(),
                MANUAL_TRANSACTION_COLUMNS,
            )
            self._reset_sheet(self._client.ledger_sheet(), LEDGER_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to clear mirror: {e}")

    async def load_snapshot(self) -> Optional[dict]:
        try:
            settings_rows = _data_rows(self._client.settings_sheet())
            if not settings_rows:
                return None
            settings_row = settings_rows[0]

            # Sheet order is append order, i.e. ledger order. Entry dates are
            # chosen by the user and do not reorder the ledger.
            ledger = [
                self._row_to_ledger_entry(row)
                for row in _data_rows(self._client.ledger_sheet())
            ]

            return {
                "totalMoneyPool": _cell(settings_row, 0, "0"),
                "settings": {
                    "setupComplete": _cell(settings_row, 1).lower() == "true",
                    "setupDate": _cell(settings_row, 2) or None,
                },
                "investments": [
                    self._row_to_investment(row)
                    for row in _data_rows(self._client.investments_sheet())
                ],
                "returns": [
                    self._row_to_return(row)
                    for row in _data_rows(self._client.returns_sheet())
                ],
                "manualTransactions": [
                    self._row_to_manual_transaction(row)
                    for row in _data_rows(self._client.manual_transactions_sheet())
                ],
                "transactions": ledger,
            }
        except Exception as e:
            raise StorageError(f"Failed to load snapshot from Google Sheets: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        return AuditEvent(
            event_id=_cell(row, 0),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_cell(row, 5) or None,
            description=_cell(row, 6),
            details=json.loads(_cell(row, 7)) if _cell(row, 7) else {},
            error_message=_cell(row, 8) or None,
        )

    @_retrying()
    async def append_event(self, event: AuditEvent) -> None:
        try:
            sheet = self._client.audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            sheet = self._client.audit_sheet()
            all_rows = _data_rows(sheet)

            events = []
            for row in all_rows:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue  # Skip malformed rows

            # Newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
