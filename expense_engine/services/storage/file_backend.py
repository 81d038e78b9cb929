"""
File Key/Value Backend

Stores each key as one small file inside a data directory.

TRADEOFFS:
- One file per key keeps every write independent (no shared file to corrupt)
- Writes go to a temp file and are renamed into place, so a crash leaves
  either the old or the new value, never a torn one
- Not meant for very large stores - every index bucket is a file
"""

import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_engine.errors import StorageUnavailable
from expense_engine.services.storage.interface import KeyValueBackend


logger = structlog.get_logger(__name__)

FILE_SUFFIX = ".val"


class FileBackend(KeyValueBackend):
    """
    Directory-backed implementation of the key/value interface.

    Transient OS errors are retried a few times before the operation
    surfaces StorageUnavailable to the caller.
    """

    def __init__(self, data_dir: str):
        self._root = Path(data_dir)

    def _path_for(self, key: str) -> Path:
        return self._root / (quote(key, safe="") + FILE_SUFFIX)

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        reraise=True,
    )
    def _write(self, path: Path, value: str) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)

    @retry(
        retry=retry_if_exception_type(OSError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.05, min=0.05, max=0.5),
        reraise=True,
    )
    def _read(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    async def set(self, key: str, value: str) -> None:
        try:
            self._write(self._path_for(key), value)
        except OSError as e:
            logger.error("file_backend_write_failed", key=key, error=str(e))
            raise StorageUnavailable(f"Failed to write {key}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        try:
            return self._read(self._path_for(key))
        except OSError as e:
            logger.error("file_backend_read_failed", key=key, error=str(e))
            raise StorageUnavailable(f"Failed to read {key}: {e}") from e

    async def remove(self, key: str) -> None:
        try:
            self._path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"Failed to remove {key}: {e}") from e
