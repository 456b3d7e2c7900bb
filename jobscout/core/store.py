"""Key-value store contract used to persist cache entries, budget and recent searches.

The engine treats the store as durable but possibly slow. It is never the
source of truth for budget atomicity across processes.
"""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Minimal string key-value persistence supplied by the embedding application."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Insert or overwrite a value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""

    @abstractmethod
    def list_keys(self, prefix: str = "") -> list[str]:
        """Return every key starting with prefix."""

    def remove_all(self, keys: list[str]) -> None:
        for key in keys:
            self.remove(key)


class MemoryStore(KeyValueStore):
    """Dict-backed store for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def list_keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]
