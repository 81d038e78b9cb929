"""
Abstract Key/Value Backend Interface

DESIGN DECISION: The only persistence primitive we rely on is a flat
key/value store of strings. There is no database and no transactions.
Everything else (indexes, pagination, the dead-letter list) is built on
top of these three operations.

This allows us to:
1. Run on the host device's plain storage
2. Use in-memory storage for testing
3. Use a directory of files on a desktop
"""

from abc import ABC, abstractmethod
from typing import Optional


class KeyValueBackend(ABC):
    """
    Abstract interface for key/value storage.

    Keys are plain strings. Values are opaque strings produced by the codec.
    """

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """
        Store a value under a key, replacing any previous value.

        Raises:
            StorageUnavailable: If the write cannot complete
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """
        Read the value stored under a key.

        Returns:
            The value, or None if the key is absent

        Raises:
            StorageUnavailable: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """
        Remove a key. Removing an absent key is not an error.

        Raises:
            StorageUnavailable: If the removal cannot complete
        """
        pass
