"""
Google Sheets Key-Value Storage

DESIGN DECISION: The hosted backend keeps every key of every user on one
worksheet so a student can open the spreadsheet and see (or back up) their
ledger without any database.

    key | value_json

Reads load the whole worksheet and filter in Python. set_many rewrites the
table with a single values update, which Sheets applies as one request, so
materialized transactions and advanced rules land together.
"""

import json
from typing import Optional

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from finan_ai.config import get_settings
from finan_ai.config.settings import GoogleSheetsSettings
from finan_ai.services.storage.interface import (
    JSONValue,
    KeyValueStoreInterface,
    StorageConnectionError,
    StorageError,
)


KV_COLUMNS = ["key", "value_json"]
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
# Rate limits, 5xx answers and dropped connections (requests errors are OSErrors)
TRANSIENT_ERRORS = (gspread.exceptions.APIError, OSError)


class GoogleSheetsClient:
    """Opens the key/value worksheet, connecting on first use."""

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._settings = settings or get_settings().google_sheets
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        if self._client is not None:
            return self._client
        path = self._settings.credentials_path
        try:
            credentials = Credentials.from_service_account_file(path, scopes=[SHEETS_SCOPE])
        except FileNotFoundError as e:
            raise StorageConnectionError(f"Service account file {path} is missing") from e
        except ValueError as e:
            raise StorageConnectionError(f"Service account file {path} is invalid: {e}") from e
        self._client = gspread.authorize(credentials)
        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            spreadsheet_id = self._settings.spreadsheet_id
            try:
                self._spreadsheet = self.connect().open_by_key(spreadsheet_id)
            except gspread.SpreadsheetNotFound as e:
                raise StorageConnectionError(
                    f"No spreadsheet {spreadsheet_id} is shared with the service account"
                ) from e
        return self._spreadsheet

    def get_kv_sheet(self) -> gspread.Worksheet:
        """The key/value worksheet, created with a header row when absent."""
        spreadsheet = self.get_spreadsheet()
        name = self._settings.kv_sheet_name
        try:
            return spreadsheet.worksheet(name)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(title=name, rows=1000, cols=len(KV_COLUMNS))
            sheet.append_row(KV_COLUMNS)
            return sheet


class GoogleSheetsKeyValueStore(KeyValueStoreInterface):
    """Key-value store over GoogleSheetsClient; one key per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _read_table(self) -> dict[str, str]:
        """Current key -> raw JSON mapping, in sheet order."""
        sheet = self._client.get_kv_sheet()
        rows = sheet.get_all_values()[1:]  # Skip header
        table: dict[str, str] = {}
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            table[row[0]] = row[1] if len(row) > 1 else ""
        return table

    def _write_table(self, table: dict[str, str], previous_size: int) -> None:
        """Rewrite the whole table in one values update."""
        sheet = self._client.get_kv_sheet()
        rows = [KV_COLUMNS] + [[key, raw] for key, raw in table.items()]
        # Blank out rows left over from a longer previous table
        rows += [["", ""]] * max(0, previous_size - len(table))
        sheet.update(range_name="A1", values=rows, value_input_option="RAW")

    @staticmethod
    def _decode(key: str, raw: str) -> JSONValue:
        if raw == "":
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt value for key {key}: {e}")

    async def get(self, key: str, default: JSONValue = None) -> JSONValue:
        try:
            table = self._read_table()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read key {key}: {e}")

        if key not in table:
            return default
        return self._decode(key, table[key])

    async def set(self, key: str, value: JSONValue) -> None:
        await self.set_many({key: value})

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _merge_and_write(self, encoded: dict[str, str]) -> None:
        table = self._read_table()
        previous_size = len(table)
        table.update(encoded)
        self._write_table(table, previous_size)

    async def set_many(self, values: dict[str, JSONValue]) -> None:
        # Encoding errors are final; only the Sheets round trip is retried
        try:
            encoded = {key: json.dumps(value, ensure_ascii=False) for key, value in values.items()}
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value is not JSON-serializable: {e}")

        try:
            self._merge_and_write(encoded)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write keys {sorted(values)}: {e}")

    async def delete(self, key: str) -> bool:
        try:
            table = self._read_table()
            if key not in table:
                return False
            previous_size = len(table)
            del table[key]
            self._write_table(table, previous_size)
            return True
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete key {key}: {e}")

    async def keys(self, prefix: str = "") -> list[str]:
        try:
            table = self._read_table()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list keys: {e}")
        return sorted(k for k in table if k.startswith(prefix))
