"""
Session manager: opaque bearer tokens with a fixed time-to-live.

Lifecycle per token: issued -> valid -> expired | revoked. Validity is
recomputed from expires_at on every call; validating never extends a
session. Expired rows are ignored lazily; purge_expired() exists only for
storage hygiene.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable

from ..core.exceptions import AuthError, ConflictError
from ..core.logger import get_logger
from ..stores.base import Repository
from .models import IdentityPublic, Session

logger = get_logger(__name__)

TOKEN_BYTES = 32
_ISSUE_ATTEMPTS = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_token() -> str:
    """256-bit random token, hex encoded."""
    return secrets.token_hex(TOKEN_BYTES)


class SessionManager:
    def __init__(
        self,
        repository: Repository,
        ttl: timedelta,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if ttl <= timedelta(0):
            raise ValueError("Session TTL must be positive")
        self.repository = repository
        self.ttl = ttl
        self.clock = clock

    def issue(self, identity_id: int) -> Session:
        """Create and persist a new session for the identity."""
        now = self.clock()
        for attempt in range(1, _ISSUE_ATTEMPTS + 1):
            session = Session(
                token=new_token(),
                identity_id=identity_id,
                issued_at=now,
                expires_at=now + self.ttl,
            )
            try:
                self.repository.insert_session(session)
            except ConflictError:
                logger.warning("Session token collision", attempt=attempt)
                continue
            logger.info(
                "Session issued",
                identity_id=identity_id,
                expires_at=session.expires_at.isoformat(),
            )
            return session
        raise ConflictError("Could not allocate a unique session token")

    def validate(self, token: str) -> IdentityPublic:
        """Return the identity behind a live session, else raise AuthError."""
        if not token:
            raise AuthError("Not authenticated")
        session = self.repository.get_session(token)
        if session is None:
            raise AuthError("Invalid or expired session")
        if not session.is_valid_at(self.clock()):
            raise AuthError("Invalid or expired session")
        identity = self.repository.get_identity(session.identity_id)
        if identity is None:
            raise AuthError("Invalid or expired session")
        return identity.public()

    def revoke(self, token: str) -> None:
        """Invalidate a session token (idempotent)."""
        if not token:
            return
        self.repository.delete_session(token)
        logger.info("Session revoked")

    def purge_expired(self) -> int:
        removed = self.repository.delete_expired_sessions(self.clock())
        if removed:
            logger.info("Expired sessions purged", removed=removed)
        return removed
