"""
Google Sheets Remote Gateway

DESIGN DECISION: Google Sheets is used as the remote mirror because:
1. The household can look at its data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a family ledger)
- No transactions: an upsert batch that fails halfway leaves earlier rows
  written. The reconciler only marks records synced after the whole batch
  succeeds, and upserts are idempotent, so the retry repairs it.
- Limited query capabilities (we filter and sort in Python)

One worksheet per table, header row = wire field names.
"""

import asyncio
from functools import partial
from typing import Any, Callable, Optional

import gspread
from google.auth.exceptions import GoogleAuthError, TransportError
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_tracker.config import GoogleSheetsSettings, get_settings
from finance_tracker.services.remote.interface import (
    NetworkError,
    RemoteError,
    RemoteGateway,
    RemoteRecord,
    RemoteTable,
)


TABLE_COLUMNS: dict[RemoteTable, list[str]] = {
    RemoteTable.TRANSACTIONS: [
        "id",
        "concept",
        "categoryId",
        "subcategoryId",
        "amount",
        "date",
        "accountId",
        "notes",
        "createdAt",
        "updatedAt",
    ],
    RemoteTable.BUDGETS: [
        "id",
        "categoryId",
        "subcategoryId",
        "limit",
        "spent",
        "periodType",
        "startDate",
        "endDate",
        "notes",
        "recurring",
        "recurrenceFrequency",
        "recurrenceEndDate",
        "createdAt",
        "updatedAt",
    ],
    RemoteTable.CATEGORIES: [
        "id",
        "name",
        "type",
        "color",
        "icon",
        "isSubcategory",
        "parentId",
        "createdAt",
        "updatedAt",
    ],
}


def _column_letter(index: int) -> str:
    """1-based column index to A1 letters."""
    letters = ""
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(NetworkError),
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
                raise RemoteError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except TransportError as e:
                raise NetworkError(f"Failed to reach Google Sheets: {e}")
            except GoogleAuthError as e:
                raise RemoteError(f"Google Sheets authentication failed: {e}")

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
                raise RemoteError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_table_sheet(self, table: RemoteTable) -> gspread.Worksheet:
        """Get or create the worksheet backing a table."""
        spreadsheet = self.get_spreadsheet()
        title = self._settings.sheet_name_for(table.value)
        columns = TABLE_COLUMNS[table]
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class GoogleSheetsRemoteGateway(RemoteGateway):
    """
    Google Sheets implementation of the remote gateway.

    Records are stored one per row; None is an empty cell. Values are
    written RAW and read back as strings, which the pydantic models coerce.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @staticmethod
    def _record_to_row(table: RemoteTable, record: RemoteRecord) -> list[str]:
        row = []
        for column in TABLE_COLUMNS[table]:
            value = record.get(column)
            row.append("" if value is None else str(value))
        return row

    @staticmethod
    def _row_to_record(table: RemoteTable, row: list[str]) -> RemoteRecord:
        columns = TABLE_COLUMNS[table]
        padded = list(row) + [""] * (len(columns) - len(row))
        return {
            column: (value if value != "" else None)
            for column, value in zip(columns, padded)
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(NetworkError),
        reraise=True,
    )
    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking gspread call off the event loop, translating errors."""
        try:
            return await asyncio.to_thread(partial(fn, *args))
        except RemoteError:
            raise
        except gspread.exceptions.APIError as e:
            raise RemoteError(f"Google Sheets rejected the request: {e}")
        except (TransportError, OSError) as e:
            # requests' connection errors are OSErrors
            raise NetworkError(f"Failed to reach Google Sheets: {e}")

    def _read_rows(self, table: RemoteTable) -> list[list[str]]:
        sheet = self._client.get_table_sheet(table)
        return sheet.get_all_values()[1:]  # Skip header

    async def select_all(
        self,
        table: RemoteTable,
        order_by: Optional[str] = None,
    ) -> list[RemoteRecord]:
        rows = await self._run(self._read_rows, table)
        records = [
            self._row_to_record(table, row)
            for row in rows
            if row and row[0]  # Skip empty rows
        ]
        if order_by:
            records.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or ""))
        return records

    def _write_rows(
        self,
        table: RemoteTable,
        records: list[RemoteRecord],
        on_conflict: str,
        replace_existing: bool,
    ) -> None:
        sheet = self._client.get_table_sheet(table)
        columns = TABLE_COLUMNS[table]
        key_index = columns.index(on_conflict)
        all_rows = sheet.get_all_values()

        # Map conflict key -> sheet row number (row 1 is header)
        existing = {
            row[key_index]: idx
            for idx, row in enumerate(all_rows[1:], start=2)
            if len(row) > key_index and row[key_index]
        }

        new_rows = []
        for record in records:
            row = self._record_to_row(table, record)
            row_number = existing.get(row[key_index])
            if row_number is None:
                new_rows.append(row)
                existing[row[key_index]] = -1  # duplicates inside the batch
            elif not replace_existing:
                raise RemoteError(
                    f"Record {row[key_index]} already exists in {table.value}"
                )
            elif row_number > 0:
                end_column = _column_letter(len(columns))
                sheet.update(
                    range_name=f"A{row_number}:{end_column}{row_number}",
                    values=[row],
                    value_input_option="RAW",
                )

        if new_rows:
            sheet.append_rows(new_rows, value_input_option="RAW")

    async def upsert(
        self,
        table: RemoteTable,
        records: list[RemoteRecord],
        on_conflict: str = "id",
    ) -> None:
        if not records:
            return
        await self._run(self._write_rows, table, records, on_conflict, True)

    async def insert(
        self,
        table: RemoteTable,
        records: list[RemoteRecord],
    ) -> None:
        if not records:
            return
        await self._run(self._write_rows, table, records, "id", False)
