"""
Versioned, additive schema migrations for the SQLite repository.

Each migration moves the schema from version N-1 to N. Applied versions
are recorded in schema_version. Migrations only run when invoked
explicitly (scripts/migrate_db.py or SQLiteRepository.migrate()); opening
a repository never alters tables.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Tuple

from ..core.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    statements: Tuple[str, ...]


MIGRATIONS: List[Migration] = [
    Migration(
        version=1,
        description="identities and sessions",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS identities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                password_hash TEXT NOT NULL,
                plan TEXT NOT NULL DEFAULT 'basic' CHECK (plan IN ('basic','premium')),
                created_at TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS sessions (
                token TEXT PRIMARY KEY,
                identity_id INTEGER NOT NULL,
                issued_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                FOREIGN KEY (identity_id) REFERENCES identities (id) ON DELETE CASCADE
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_sessions_expires_at ON sessions (expires_at)",
        ),
    ),
    Migration(
        version=2,
        description="conversational memory",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS memories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                identity_id INTEGER NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('user','assistant')),
                content TEXT NOT NULL,
                created_at TEXT NOT NULL,
                FOREIGN KEY (identity_id) REFERENCES identities (id) ON DELETE CASCADE
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_memories_identity_id ON memories (identity_id, id)",
        ),
    ),
    Migration(
        version=3,
        description="usage counters",
        statements=(
            """
            CREATE TABLE IF NOT EXISTS usage_stats (
                identity_id INTEGER PRIMARY KEY,
                messages_sent INTEGER NOT NULL DEFAULT 0,
                messages_received INTEGER NOT NULL DEFAULT 0,
                last_active_at TEXT,
                FOREIGN KEY (identity_id) REFERENCES identities (id) ON DELETE CASCADE
            )
            """,
        ),
    ),
]

LATEST_VERSION = MIGRATIONS[-1].version


def current_version(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
    ).fetchone()
    if row is None:
        return 0
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return int(row[0] or 0)


def apply_migrations(conn: sqlite3.Connection) -> List[int]:
    """Apply every pending migration, each in its own transaction."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            description TEXT NOT NULL,
            applied_at TEXT NOT NULL
        )
        """
    )
    applied: List[int] = []
    version = current_version(conn)
    for migration in MIGRATIONS:
        if migration.version <= version:
            continue
        logger.info(
            "Applying schema migration",
            version=migration.version,
            description=migration.description,
        )
        conn.execute("BEGIN IMMEDIATE")
        try:
            for statement in migration.statements:
                conn.execute(statement)
            conn.execute(
                "INSERT INTO schema_version (version, description, applied_at) VALUES (?, ?, ?)",
                (
                    migration.version,
                    migration.description,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
        applied.append(migration.version)
    return applied
