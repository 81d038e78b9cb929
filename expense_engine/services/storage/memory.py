"""In-memory key/value backend. Volatile; used for tests and previews."""

from typing import Optional

from expense_engine.services.storage.interface import KeyValueBackend


class InMemoryBackend(KeyValueBackend):
    """Dict-backed implementation of the key/value interface."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)
