"""
SQLite repository with a bounded connection pool.

Connections are opened lazily up to pool_size and handed out one per
operation. When every connection is busy, callers wait up to
pool_timeout_seconds and then get StorageError. A transaction() binds one
connection to the calling thread so the operations inside it share it.
"""

from __future__ import annotations

import queue
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from ..auth.models import Identity, Session
from ..core.exceptions import ConflictError, StorageError
from ..core.logger import get_logger
from ..services.models import MemoryEntry, UsageStat
from . import migrations
from .base import Repository

logger = get_logger(__name__)

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


def _to_db(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def _from_db(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class ConnectionPool:
    """Fixed-size pool of sqlite3 connections shared by worker threads."""

    def __init__(self, db_path: str, size: int = 10, timeout_seconds: float = 5.0):
        self.db_path = db_path
        self.size = size
        self.timeout_seconds = timeout_seconds
        self._idle: "queue.LifoQueue[sqlite3.Connection]" = queue.LifoQueue(maxsize=size)
        self._opened = 0
        self._guard = threading.Lock()
        self._closed = False

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {int(self.timeout_seconds * 1000)}")
        return conn

    def acquire(self) -> sqlite3.Connection:
        if self._closed:
            raise StorageError("Connection pool is closed")
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            pass
        with self._guard:
            if self._opened < self.size:
                self._opened += 1
                try:
                    return self._open()
                except sqlite3.Error as e:
                    self._opened -= 1
                    raise StorageError(f"Could not open database {self.db_path}: {e}") from e
        try:
            return self._idle.get(timeout=self.timeout_seconds)
        except queue.Empty:
            logger.warning(
                "Connection pool exhausted",
                pool_size=self.size,
                waited_seconds=self.timeout_seconds,
            )
            raise StorageError("Connection pool exhausted")

    def release(self, conn: sqlite3.Connection) -> None:
        if self._closed:
            conn.close()
            return
        self._idle.put_nowait(conn)

    def close(self) -> None:
        self._closed = True
        while True:
            try:
                self._idle.get_nowait().close()
            except queue.Empty:
                break


class SQLiteRepository(Repository):
    def __init__(self, db_path: str, pool_size: int = 10, pool_timeout_seconds: float = 5.0):
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        self.pool = ConnectionPool(db_path, size=pool_size, timeout_seconds=pool_timeout_seconds)
        self._bound = threading.local()

    # Connection handling

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        bound = getattr(self._bound, "conn", None)
        if bound is not None:
            yield bound
            return
        conn = self.pool.acquire()
        try:
            yield conn
        finally:
            self.pool.release(conn)

    @contextmanager
    def _errors(self, operation: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise ConflictError("Duplicate value") from e
            logger.error("Repository integrity error", operation=operation, error=str(e))
            raise StorageError(f"{operation} failed: {e}") from e
        except sqlite3.Error as e:
            logger.error("Repository query failed", operation=operation, error=str(e))
            raise StorageError(f"{operation} failed: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if getattr(self._bound, "conn", None) is not None:
            yield
            return
        conn = self.pool.acquire()
        self._bound.conn = conn
        try:
            with self._errors("begin"):
                conn.execute("BEGIN IMMEDIATE")
            try:
                yield
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            with self._errors("commit"):
                conn.execute("COMMIT")
        finally:
            self._bound.conn = None
            self.pool.release(conn)

    # Schema

    def migrate(self) -> List[int]:
        with self._connection() as conn, self._errors("migrate"):
            applied = migrations.apply_migrations(conn)
        if applied:
            logger.info("Database migrated", db_path=self.db_path, applied=applied)
        return applied

    def schema_version(self) -> int:
        with self._connection() as conn, self._errors("schema_version"):
            return migrations.current_version(conn)

    def ensure_schema_current(self) -> None:
        version = self.schema_version()
        if version < migrations.LATEST_VERSION:
            raise StorageError(
                f"Database schema is at version {version}, expected "
                f"{migrations.LATEST_VERSION}; run scripts/migrate_db.py"
            )

    def ping(self) -> None:
        with self._connection() as conn, self._errors("ping"):
            conn.execute("SELECT 1").fetchone()

    def close(self) -> None:
        self.pool.close()

    # Identities

    @staticmethod
    def _identity(row: sqlite3.Row) -> Identity:
        return Identity(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            password_hash=row["password_hash"],
            plan=row["plan"],
            created_at=_from_db(row["created_at"]),
        )

    def create_identity(
        self, name: str, email: str, password_hash: str, created_at: datetime
    ) -> Identity:
        with self._connection() as conn:
            try:
                with self._errors("create_identity"):
                    cur = conn.execute(
                        "INSERT INTO identities (name, email, password_hash, plan, created_at) "
                        "VALUES (?, ?, ?, 'basic', ?)",
                        (name, email, password_hash, _to_db(created_at)),
                    )
            except ConflictError as e:
                raise ConflictError("Email is already registered") from e
            identity_id = cur.lastrowid
        return Identity(
            id=identity_id,
            name=name,
            email=email,
            password_hash=password_hash,
            plan="basic",
            created_at=created_at,
        )

    def get_identity(self, identity_id: int) -> Optional[Identity]:
        with self._connection() as conn, self._errors("get_identity"):
            row = conn.execute("SELECT * FROM identities WHERE id = ?", (identity_id,)).fetchone()
        return self._identity(row) if row else None

    def get_identity_by_email(self, email: str) -> Optional[Identity]:
        with self._connection() as conn, self._errors("get_identity_by_email"):
            row = conn.execute(
                "SELECT * FROM identities WHERE email = ? LIMIT 1", (email,)
            ).fetchone()
        return self._identity(row) if row else None

    def set_plan(self, identity_id: int, plan: str) -> Optional[Identity]:
        with self._connection() as conn, self._errors("set_plan"):
            conn.execute("UPDATE identities SET plan = ? WHERE id = ?", (plan, identity_id))
            row = conn.execute("SELECT * FROM identities WHERE id = ?", (identity_id,)).fetchone()
        return self._identity(row) if row else None

    # Sessions

    def insert_session(self, session: Session) -> None:
        with self._connection() as conn, self._errors("insert_session"):
            conn.execute(
                "INSERT INTO sessions (token, identity_id, issued_at, expires_at) VALUES (?, ?, ?, ?)",
                (
                    session.token,
                    session.identity_id,
                    _to_db(session.issued_at),
                    _to_db(session.expires_at),
                ),
            )

    def get_session(self, token: str) -> Optional[Session]:
        with self._connection() as conn, self._errors("get_session"):
            row = conn.execute("SELECT * FROM sessions WHERE token = ?", (token,)).fetchone()
        if row is None:
            return None
        return Session(
            token=row["token"],
            identity_id=row["identity_id"],
            issued_at=_from_db(row["issued_at"]),
            expires_at=_from_db(row["expires_at"]),
        )

    def delete_session(self, token: str) -> None:
        with self._connection() as conn, self._errors("delete_session"):
            conn.execute("DELETE FROM sessions WHERE token = ?", (token,))

    def delete_expired_sessions(self, now: datetime) -> int:
        with self._connection() as conn, self._errors("delete_expired_sessions"):
            cur = conn.execute("DELETE FROM sessions WHERE expires_at <= ?", (_to_db(now),))
        return cur.rowcount

    # Memory

    def append_memory(
        self, identity_id: int, role: str, content: str, created_at: datetime
    ) -> MemoryEntry:
        with self._connection() as conn, self._errors("append_memory"):
            cur = conn.execute(
                "INSERT INTO memories (identity_id, role, content, created_at) VALUES (?, ?, ?, ?)",
                (identity_id, role, content, _to_db(created_at)),
            )
        return MemoryEntry(
            id=cur.lastrowid,
            identity_id=identity_id,
            role=role,
            content=content,
            created_at=created_at,
        )

    def recent_memory(self, identity_id: int, limit: int) -> List[MemoryEntry]:
        with self._connection() as conn, self._errors("recent_memory"):
            rows = conn.execute(
                "SELECT * FROM memories WHERE identity_id = ? ORDER BY id DESC LIMIT ?",
                (identity_id, limit),
            ).fetchall()
        return [
            MemoryEntry(
                id=row["id"],
                identity_id=row["identity_id"],
                role=row["role"],
                content=row["content"],
                created_at=_from_db(row["created_at"]),
            )
            for row in reversed(rows)
        ]

    def clear_memory(self, identity_id: int) -> int:
        with self._connection() as conn, self._errors("clear_memory"):
            cur = conn.execute("DELETE FROM memories WHERE identity_id = ?", (identity_id,))
        return cur.rowcount

    # Usage

    def increment_usage(self, identity_id: int, now: datetime) -> None:
        with self._connection() as conn, self._errors("increment_usage"):
            conn.execute(
                """
                INSERT INTO usage_stats (identity_id, messages_sent, messages_received, last_active_at)
                VALUES (?, 1, 1, ?)
                ON CONFLICT (identity_id) DO UPDATE SET
                    messages_sent = messages_sent + 1,
                    messages_received = messages_received + 1,
                    last_active_at = excluded.last_active_at
                """,
                (identity_id, _to_db(now)),
            )

    def get_usage(self, identity_id: int) -> Optional[UsageStat]:
        with self._connection() as conn, self._errors("get_usage"):
            row = conn.execute(
                "SELECT * FROM usage_stats WHERE identity_id = ?", (identity_id,)
            ).fetchone()
        if row is None:
            return None
        return UsageStat(
            identity_id=row["identity_id"],
            messages_sent=row["messages_sent"],
            messages_received=row["messages_received"],
            last_active_at=_from_db(row["last_active_at"]),
        )
