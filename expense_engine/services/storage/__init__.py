"""
Storage Services Package

Provides the key/value backend interface, concrete backends, the value
codec, and the indexed expense store built on top of them.
"""

from expense_engine.services.storage.interface import KeyValueBackend
from expense_engine.services.storage.file_backend import FileBackend
from expense_engine.services.storage.memory import InMemoryBackend
from expense_engine.services.storage.store import ExpenseStore

__all__ = [
    # Interface
    "KeyValueBackend",
    # Backends
    "FileBackend",
    "InMemoryBackend",
    # Indexed store
    "ExpenseStore",
]
