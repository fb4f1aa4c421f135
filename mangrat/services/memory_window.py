"""Memory window - append-only per-identity log of turns with a bounded recent read"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List

from ..core.exceptions import ValidationError
from ..core.logger import get_logger
from ..stores.base import Repository
from .models import ROLES, MemoryEntry

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryWindow:
    """Conversation memory for each identity, read back as the N most recent turns."""

    def __init__(self, repository: Repository, clock: Callable[[], datetime] = _utcnow):
        self.repository = repository
        self.clock = clock

    def append(self, identity_id: int, role: str, content: str) -> MemoryEntry:
        """
        Append one entry to the identity's log.

        Args:
            identity_id: Owner of the entry
            role: "user" or "assistant"
            content: Message text
        """
        if role not in ROLES:
            raise ValidationError(f"Unknown memory role: {role!r}")
        entry = self.repository.append_memory(identity_id, role, content, self.clock())
        logger.debug(
            "Memory appended",
            identity_id=identity_id,
            role=role,
            entry_id=entry.id,
        )
        return entry

    def fetch(self, identity_id: int, limit: int) -> List[MemoryEntry]:
        """
        Return at most `limit` most recent entries, oldest first.

        Raises ValidationError unless limit is a positive integer.
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError("limit must be a positive integer")
        return self.repository.recent_memory(identity_id, limit)

    def clear(self, identity_id: int) -> int:
        """Delete every entry for the identity. Irreversible."""
        removed = self.repository.clear_memory(identity_id)
        logger.info("Memory cleared", identity_id=identity_id, entries_removed=removed)
        return removed
