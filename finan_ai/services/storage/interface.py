"""
Abstract Key-Value Storage Interface

DESIGN DECISION: All persistence goes through a small key-value interface.
This allows us to:
1. Keep each user's data isolated by key namespace
2. Use in-memory storage for testing
3. Swap the local JSON document for Google Sheets without touching the store
4. Keep the store and flows decoupled from the storage implementation

Values are JSON-serializable (dicts, lists, strings, numbers, booleans, None).
The interface is intentionally small - we're not building a database.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


JSONValue = Any


class KeyValueStoreInterface(ABC):
    """
    Abstract interface for key-value storage.

    Any storage implementation (memory, JSON file, Google Sheets)
    must implement these methods.
    """

    @abstractmethod
    async def get(self, key: str, default: JSONValue = None) -> JSONValue:
        """
        Read a value.

        Args:
            key: Namespaced key
            default: Value returned when the key is absent

        Returns:
            The stored JSON value, or default

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def set(self, key: str, value: JSONValue) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def set_many(self, values: dict[str, JSONValue]) -> None:
        """
        Write several keys as one atomic update.

        Either every key is written or none is. This is what makes the
        recurring-rule cursor and the materialized transactions land
        together.

        Raises:
            StorageError: If the write fails (nothing was written)
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a key.

        Returns:
            True if the key existed
        """
        pass

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """
        List stored keys starting with prefix, sorted.
        """
        pass


def namespaced_key(
    collection: str,
    user_id: Optional[str] = None,
    prefix: str = "finan-ai",
) -> str:
    """
    Build a storage key for a collection, scoped to a user.

    >>> namespaced_key("transactions", "a@b.com")
    'finan-ai:transactions_a@b.com'
    >>> namespaced_key("users")
    'finan-ai:users'
    """
    if user_id:
        return f"{prefix}:{collection}_{user_id}"
    return f"{prefix}:{collection}"


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
