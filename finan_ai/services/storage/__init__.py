"""
Storage Services Package

Provides the abstract key-value interface and its implementations:
in-memory, local JSON file, and Google Sheets.
"""

from finan_ai.services.storage.interface import (
    KeyValueStoreInterface,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    namespaced_key,
)
from finan_ai.services.storage.local import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from finan_ai.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
)

__all__ = [
    # Interface
    "KeyValueStoreInterface",
    "namespaced_key",
    # Exceptions
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Local implementations
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    # Google Sheets implementation
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
]
