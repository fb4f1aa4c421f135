"""
Repository interface shared by every component.

CredentialStore, SessionManager, MemoryWindow and UsageCounter receive a
Repository instance instead of reaching for a global connection. Every
method raises StorageError when the backing store fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from ..auth.models import Identity, Session
from ..services.models import MemoryEntry, UsageStat


class Repository(ABC):
    """Key-indexed storage for identities, sessions, memory and usage."""

    # Identities

    @abstractmethod
    def create_identity(
        self, name: str, email: str, password_hash: str, created_at: datetime
    ) -> Identity:
        """Insert a basic-plan identity. Raises ConflictError on a duplicate email."""
        raise NotImplementedError

    @abstractmethod
    def get_identity(self, identity_id: int) -> Optional[Identity]:
        raise NotImplementedError

    @abstractmethod
    def get_identity_by_email(self, email: str) -> Optional[Identity]:
        raise NotImplementedError

    @abstractmethod
    def set_plan(self, identity_id: int, plan: str) -> Optional[Identity]:
        """Update the plan; returns None when the identity does not exist."""
        raise NotImplementedError

    # Sessions

    @abstractmethod
    def insert_session(self, session: Session) -> None:
        """Persist a session. Raises ConflictError if the token already exists."""
        raise NotImplementedError

    @abstractmethod
    def get_session(self, token: str) -> Optional[Session]:
        raise NotImplementedError

    @abstractmethod
    def delete_session(self, token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete_expired_sessions(self, now: datetime) -> int:
        raise NotImplementedError

    # Memory

    @abstractmethod
    def append_memory(
        self, identity_id: int, role: str, content: str, created_at: datetime
    ) -> MemoryEntry:
        raise NotImplementedError

    @abstractmethod
    def recent_memory(self, identity_id: int, limit: int) -> List[MemoryEntry]:
        """Return at most `limit` newest entries, oldest first."""
        raise NotImplementedError

    @abstractmethod
    def clear_memory(self, identity_id: int) -> int:
        raise NotImplementedError

    # Usage

    @abstractmethod
    def increment_usage(self, identity_id: int, now: datetime) -> None:
        """Atomically add one sent and one received message."""
        raise NotImplementedError

    @abstractmethod
    def get_usage(self, identity_id: int) -> Optional[UsageStat]:
        raise NotImplementedError

    # Lifecycle

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes so they are applied all together or not at all."""
        yield

    def ping(self) -> None:
        """Raise StorageError if the store cannot be reached."""

    def close(self) -> None:
        pass
