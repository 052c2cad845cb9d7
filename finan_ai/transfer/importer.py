"""
Statement Import

FLOW:
1. User uploads a file
2. Size and format are checked (no AI call for rejected files)
3. The AI reads the rows; the response gate keeps only valid ones
4. User sees a preview
5. Only confirm_import() adds anything to the ledger

Imported rows are always uncategorized (category_id = "").
"""

from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finan_ai.agents import TransactionExtractionAgent
from finan_ai.config import AppSettings, get_settings
from finan_ai.models.finance import Transaction, TransactionDraft
from finan_ai.store import AppState
from finan_ai.validation import ParsedResponse, ResponseError


logger = structlog.get_logger(__name__)

TEXT_FORMATS = frozenset({"csv", "txt"})
SPREADSHEET_FORMATS = frozenset({"xlsx"})


class UploadRejectedError(Exception):
    """Base class for rejected uploads."""
    pass


class UnsupportedFileError(UploadRejectedError):
    """The file type cannot be imported."""
    pass


class FileTooLargeError(UploadRejectedError):
    """The file exceeds the configured upload limit."""
    pass


@dataclass
class ImportPreview:
    """
    What an import would add.

    Nothing is written until the preview is confirmed.
    """
    filename: str
    parsed: ParsedResponse[list[TransactionDraft]]
    correlation_id: UUID = field(default_factory=uuid4)

    @property
    def drafts(self) -> list[TransactionDraft]:
        return self.parsed.value or []

    @property
    def ok(self) -> bool:
        return self.parsed.ok and bool(self.drafts)

    @property
    def message(self) -> str:
        if not self.parsed.ok:
            if self.parsed.error == ResponseError.NO_VALID_ITEMS:
                return "No valid transactions found in the file."
            return f"Could not import {self.filename}: {self.parsed.message}"

        message = f"Found {len(self.drafts)} transactions in {self.filename}."
        if self.parsed.dropped:
            message += f" {self.parsed.dropped} row(s) could not be read and were skipped."
        return message


def file_extension(filename: str) -> str:
    """
    >>> file_extension("Statement.CSV")
    'csv'
    """
    return PurePath(filename).suffix.lstrip(".").lower()


class ImportService:
    """Turns uploaded statements into confirmed transactions."""

    def __init__(
        self,
        extraction_agent: TransactionExtractionAgent,
        settings: Optional[AppSettings] = None,
    ):
        self._agent = extraction_agent
        self._settings = settings or get_settings().app

    def check_file(self, filename: str, size: int) -> str:
        """
        Reject files before any AI call.

        Returns:
            The lower-case extension

        Raises:
            UnsupportedFileError: Extension not allowed or not readable
            FileTooLargeError: Over the upload limit
        """
        extension = file_extension(filename)
        allowed = set(self._settings.supported_import_formats_list)
        if extension not in allowed or extension not in TEXT_FORMATS | SPREADSHEET_FORMATS:
            raise UnsupportedFileError(
                "Unsupported file type. Please upload a CSV, TXT, or XLSX file."
            )

        if size > self._settings.max_upload_size_bytes:
            raise FileTooLargeError(
                f"File is too large. The limit is {self._settings.max_upload_size_mb} MB."
            )
        return extension

    async def import_file(
        self,
        filename: str,
        content: bytes,
        mime_type: Optional[str] = None,
    ) -> ImportPreview:
        """
        Read an uploaded statement into a preview.

        Raises:
            UnsupportedFileError: Wrong type or unreadable spreadsheet
            FileTooLargeError: Over the upload limit
            AIServiceError: The AI request failed
        """
        extension = self.check_file(filename, len(content))

        if extension in SPREADSHEET_FORMATS:
            try:
                parsed = await self._agent.parse_spreadsheet(content)
            except ValueError as e:
                raise UnsupportedFileError(
                    "The spreadsheet could not be read. Please check the file."
                ) from e
        else:
            text = content.decode("utf-8-sig", errors="replace")
            parsed = await self._agent.parse_text(text)

        preview = ImportPreview(filename=filename, parsed=parsed)
        logger.info(
            "import_previewed",
            filename=filename,
            mime_type=mime_type,
            found=len(preview.drafts),
            dropped=parsed.dropped,
            error=parsed.error.value if parsed.error else None,
        )
        return preview

    @staticmethod
    def confirm_import(state: AppState, preview: ImportPreview) -> list[Transaction]:
        """Add every previewed draft to the ledger. The caller saves."""
        return state.add_transactions(preview.drafts)
