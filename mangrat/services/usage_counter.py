"""Per-identity chat counters."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from ..stores.base import Repository
from .models import UsageStat


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UsageCounter:
    def __init__(self, repository: Repository, clock: Callable[[], datetime] = _utcnow):
        self.repository = repository
        self.clock = clock

    def increment(self, identity_id: int) -> None:
        """Count one sent and one received message; the repository does the add atomically."""
        self.repository.increment_usage(identity_id, self.clock())

    def get(self, identity_id: int) -> UsageStat:
        return self.repository.get_usage(identity_id) or UsageStat(identity_id=identity_id)
