"""
Auth models.

Identity and Session are the persisted records; IdentityPublic is what
leaves the auth layer once a session has been validated (no password hash).
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

Plan = Literal["basic", "premium"]


class Identity(BaseModel):
    """Registered user record."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    password_hash: str
    plan: Plan = "basic"
    created_at: datetime

    def public(self) -> "IdentityPublic":
        return IdentityPublic(
            id=self.id,
            name=self.name,
            email=self.email,
            plan=self.plan,
            created_at=self.created_at,
        )


class IdentityPublic(BaseModel):
    """Identity summary safe to return to callers."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    plan: Plan
    created_at: datetime


class Session(BaseModel):
    """Session record (opaque token)."""

    model_config = ConfigDict(frozen=True)

    token: str
    identity_id: int
    issued_at: datetime
    expires_at: datetime

    def is_valid_at(self, now: datetime) -> bool:
        return self.expires_at > now
