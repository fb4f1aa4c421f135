"""
Credential store: registration, password verification and plan upgrades.

- Email/password identities with bcrypt hashes (per-record salt)
- Emails are unique case-insensitively and stored lower-cased
- The plaintext password is never persisted or logged
- Passwords longer than 72 UTF-8 bytes (bcrypt's input limit) are rejected
  at registration and never verify, so no two passwords collide by prefix
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

import bcrypt
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import AuthError, NotFoundError, ValidationError
from ..core.logger import get_logger
from ..services.plans import PLAN_PREMIUM
from ..stores.base import Repository
from .models import Identity

logger = get_logger(__name__)

_email_adapter = TypeAdapter(EmailStr)

_BCRYPT_MAX_BYTES = 72


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash a password with bcrypt. Raises ValidationError above 72 bytes."""
    encoded = password.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        raise ValidationError(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(encoded, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash (constant-time comparison inside bcrypt)."""
    encoded = password.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    try:
        return str(_email_adapter.validate_python(email.strip())).lower()
    except PydanticValidationError:
        raise ValidationError("A valid email address is required")


class CredentialStore:
    """Registers identities and checks login attempts against stored hashes."""

    def __init__(
        self,
        repository: Repository,
        bcrypt_rounds: int = 12,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.repository = repository
        self.bcrypt_rounds = bcrypt_rounds
        self.clock = clock
        # Compared against when the email is unknown so both failure paths cost one bcrypt check
        self._dummy_hash = hash_password("mangrat-dummy-password", rounds=bcrypt_rounds)

    def register(self, name: str, email: str, password: str) -> int:
        """
        Create a new basic-plan identity and return its id.

        Raises ValidationError for empty fields or a malformed email and
        ConflictError when the email is already registered.
        """
        name = (name or "").strip()
        if not name or not (email or "").strip() or not password:
            raise ValidationError("Name, email and password are required")
        normalized = normalize_email(email)

        identity = self.repository.create_identity(
            name=name,
            email=normalized,
            password_hash=hash_password(password, rounds=self.bcrypt_rounds),
            created_at=self.clock(),
        )
        logger.info("Identity registered", identity_id=identity.id)
        return identity.id

    def verify(self, email: str, password: str) -> Identity:
        """Return the identity for valid credentials, else raise AuthError."""
        if not (email or "").strip() or not password:
            raise ValidationError("Email and password are required")

        # Same normalisation as register(); an address it would reject matches no identity
        try:
            lookup: Optional[str] = normalize_email(email)
        except ValidationError:
            lookup = None
        identity: Optional[Identity] = (
            self.repository.get_identity_by_email(lookup) if lookup else None
        )
        if identity is None:
            verify_password(password, self._dummy_hash)
            logger.info("Login rejected", reason="unknown_email")
            raise AuthError("Invalid email or password")
        if not verify_password(password, identity.password_hash):
            logger.info("Login rejected", reason="bad_password", identity_id=identity.id)
            raise AuthError("Invalid email or password")
        return identity

    def get(self, identity_id: int) -> Identity:
        identity = self.repository.get_identity(identity_id)
        if identity is None:
            raise NotFoundError(f"Identity {identity_id} not found")
        return identity

    def upgrade(self, identity_id: int) -> str:
        """Move an identity to the premium plan (idempotent)."""
        identity = self.repository.set_plan(identity_id, PLAN_PREMIUM)
        if identity is None:
            raise NotFoundError(f"Identity {identity_id} not found")
        logger.info("Plan upgraded", identity_id=identity_id, plan=identity.plan)
        return identity.plan
