"""Import and export of transactions."""

from finan_ai.transfer.csv_export import EXPORT_HEADER, export_transactions_csv
from finan_ai.transfer.importer import (
    FileTooLargeError,
    ImportPreview,
    ImportService,
    UnsupportedFileError,
    UploadRejectedError,
    file_extension,
)

__all__ = [
    "EXPORT_HEADER",
    "export_transactions_csv",
    "FileTooLargeError",
    "ImportPreview",
    "ImportService",
    "UnsupportedFileError",
    "UploadRejectedError",
    "file_extension",
]
