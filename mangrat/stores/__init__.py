"""Repository implementations and the factory that picks one from settings."""

from ..core.config import StorageSettings
from .base import Repository
from .memory_store import InMemoryRepository
from .sqlite_store import SQLiteRepository


def build_repository(settings: StorageSettings) -> Repository:
    if settings.backend == "memory":
        return InMemoryRepository()
    return SQLiteRepository(
        settings.db_path,
        pool_size=settings.pool_size,
        pool_timeout_seconds=settings.pool_timeout_seconds,
    )


__all__ = ["Repository", "InMemoryRepository", "SQLiteRepository", "build_repository"]
