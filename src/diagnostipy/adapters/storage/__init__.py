"""Storage adapters implementing DebugStoragePort."""

from diagnostipy.adapters.storage.in_memory import InMemoryDebugStorage
from diagnostipy.adapters.storage.sqlite import SQLiteDebugStorage

__all__ = [
    "InMemoryDebugStorage",
    "SQLiteDebugStorage",
]
