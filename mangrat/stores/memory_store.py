"""
In-process repository.

Used by the test suite and for single-process demos (storage.backend:
memory). A re-entrant lock serialises access; transaction() snapshots the
state and restores it if the block raises.
"""

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from ..auth.models import Identity, Session
from ..core.exceptions import ConflictError
from ..services.models import MemoryEntry, UsageStat
from .base import Repository


class InMemoryRepository(Repository):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._identities: Dict[int, Identity] = {}
        self._sessions: Dict[str, Session] = {}
        self._memory: Dict[int, List[MemoryEntry]] = {}
        self._usage: Dict[int, UsageStat] = {}
        self._next_identity_id = 1
        self._next_memory_id = 1

    def create_identity(
        self, name: str, email: str, password_hash: str, created_at: datetime
    ) -> Identity:
        with self._lock:
            if self._find_by_email(email) is not None:
                raise ConflictError("Email is already registered")
            identity = Identity(
                id=self._next_identity_id,
                name=name,
                email=email,
                password_hash=password_hash,
                plan="basic",
                created_at=created_at,
            )
            self._identities[identity.id] = identity
            self._next_identity_id += 1
            return identity

    def _find_by_email(self, email: str) -> Optional[Identity]:
        return next(
            (i for i in self._identities.values() if i.email.lower() == email.lower()),
            None,
        )

    def get_identity(self, identity_id: int) -> Optional[Identity]:
        with self._lock:
            return self._identities.get(identity_id)

    def get_identity_by_email(self, email: str) -> Optional[Identity]:
        with self._lock:
            return self._find_by_email(email)

    def set_plan(self, identity_id: int, plan: str) -> Optional[Identity]:
        with self._lock:
            identity = self._identities.get(identity_id)
            if identity is None:
                return None
            updated = identity.model_copy(update={"plan": plan})
            self._identities[identity_id] = updated
            return updated

    def insert_session(self, session: Session) -> None:
        with self._lock:
            if session.token in self._sessions:
                raise ConflictError("Session token already exists")
            self._sessions[session.token] = session

    def get_session(self, token: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(token)

    def delete_session(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def delete_expired_sessions(self, now: datetime) -> int:
        with self._lock:
            expired = [t for t, s in self._sessions.items() if not s.is_valid_at(now)]
            for token in expired:
                del self._sessions[token]
            return len(expired)

    def append_memory(
        self, identity_id: int, role: str, content: str, created_at: datetime
    ) -> MemoryEntry:
        with self._lock:
            entry = MemoryEntry(
                id=self._next_memory_id,
                identity_id=identity_id,
                role=role,
                content=content,
                created_at=created_at,
            )
            self._memory.setdefault(identity_id, []).append(entry)
            self._next_memory_id += 1
            return entry

    def recent_memory(self, identity_id: int, limit: int) -> List[MemoryEntry]:
        with self._lock:
            return list(self._memory.get(identity_id, [])[-limit:])

    def clear_memory(self, identity_id: int) -> int:
        with self._lock:
            return len(self._memory.pop(identity_id, []))

    def increment_usage(self, identity_id: int, now: datetime) -> None:
        with self._lock:
            stat = self._usage.get(identity_id) or UsageStat(identity_id=identity_id)
            self._usage[identity_id] = UsageStat(
                identity_id=identity_id,
                messages_sent=stat.messages_sent + 1,
                messages_received=stat.messages_received + 1,
                last_active_at=now,
            )

    def get_usage(self, identity_id: int) -> Optional[UsageStat]:
        with self._lock:
            return self._usage.get(identity_id)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = (
                copy.deepcopy(self._memory),
                copy.deepcopy(self._usage),
                dict(self._identities),
                dict(self._sessions),
                self._next_memory_id,
            )
            try:
                yield
            except BaseException:
                (
                    self._memory,
                    self._usage,
                    self._identities,
                    self._sessions,
                    self._next_memory_id,
                ) = snapshot
                raise
