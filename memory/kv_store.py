"""Key-value storage interface used by the memory layer."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional


class StorageError(Exception):
    """Raised when a storage backend fails to read or write."""


class KeyValueStore(ABC):
    """Minimal string key-value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            Stored text or None if the key is absent

        Raises:
            StorageError: If the backend fails
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Write (or overwrite) a value.

        Raises:
            StorageError: If the backend fails
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Removing a missing key is not an error."""
        pass

    @abstractmethod
    def list_keys(self, prefix: str = "") -> List[str]:
        """List all keys starting with `prefix`."""
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Dict-backed store, used in tests and when persistence is disabled."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def list_keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    def __len__(self) -> int:
        return len(self._data)
