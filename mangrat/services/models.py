"""Conversation and usage records."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

Role = Literal["user", "assistant"]
ROLES = ("user", "assistant")


class MemoryEntry(BaseModel):
    """One conversational turn stored for an identity."""

    model_config = ConfigDict(frozen=True)

    id: int
    identity_id: int
    role: Role
    content: str
    created_at: datetime


class UsageStat(BaseModel):
    """Aggregate chat counters for an identity."""

    identity_id: int
    messages_sent: int = 0
    messages_received: int = 0
    last_active_at: Optional[datetime] = None


class ChatReply(BaseModel):
    """Result of one chat turn."""

    text: str
    plan: str
    remembered: bool
