# omni_core/storage/__init__.py

from .models import Direction, merkle_root
from .provider import StorageBackend
from .providers.memory_provider import InMemoryStorage
from .providers.sqlite_provider import SQLiteStorage
import os


def load_storage_backend(config: dict | None = None) -> StorageBackend:
    """
    Factory resolver for selecting the ledger storage backend.

        - memory (default)
        - sqlite
    """
    config = config or {}
    provider = config.get("provider") or os.getenv("OMNI_STORAGE_PROVIDER", "memory")

    if provider == "memory":
        return InMemoryStorage()

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or os.getenv("OMNI_DB_PATH", "db/omni_state.db")
        return SQLiteStorage(db_path)

    raise ValueError(f"Unknown storage provider: {provider}")


__all__ = [
    "Direction",
    "StorageBackend",
    "InMemoryStorage",
    "SQLiteStorage",
    "load_storage_backend",
    "merkle_root",
]
