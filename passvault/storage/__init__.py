"""Persistence backends for encrypted vault entries."""
from pathlib import Path
from typing import Optional, Union

from .base import Entry, SecretStore, StorageStats, validate_entry
from .memory import MemoryStore
from .sqlite import SQLiteStore

__all__ = [
    "Entry",
    "SecretStore",
    "StorageStats",
    "validate_entry",
    "MemoryStore",
    "SQLiteStore",
    "create_store",
]


def create_store(
    storage_type: str,
    path: Optional[Union[str, Path]] = None,
) -> SecretStore:
    """Build a store for the configured backend.

    Raises:
        ValueError: If the backend is unknown or sqlite has no path.
    """
    if storage_type == "memory":
        return MemoryStore()
    if storage_type == "sqlite":
        if path is None:
            raise ValueError("sqlite storage requires a database path")
        Path(path).parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        return SQLiteStore(path)
    raise ValueError(f"unsupported storage type: {storage_type}")
