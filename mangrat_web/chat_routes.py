"""
FastAPI routes for chat, conversational memory and usage counters.

Prefix: /api
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from mangrat.auth.models import IdentityPublic
from mangrat.container import Services

from .auth_middleware import get_services, optional_login, require_login

router = APIRouter(prefix="/api", tags=["chat"])


class ChatRequest(BaseModel):
    message: str = ""


@router.post("/chat")
def chat(
    body: ChatRequest,
    identity: Optional[IdentityPublic] = Depends(optional_login),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Generate a reply to one message.

    Signed-in callers get their memory window and plan parameters, and the
    turn is remembered. Anonymous callers (when allowed) get the basic tier
    with no memory.
    """
    reply = services.chat.chat(identity, body.message)
    return {
        "ok": True,
        "response": reply.text,
        "plan": reply.plan,
        "remembered": reply.remembered,
    }


@router.get("/memory")
def memory(
    limit: Optional[int] = Query(default=None),
    identity: IdentityPublic = Depends(require_login),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Return the most recent memory entries, oldest first (default: the plan's window)."""
    if limit is None:
        limit = services.assembler.memory_limit(identity)
    entries = services.memory.fetch(identity.id, limit)
    return {
        "ok": True,
        "entries": [
            {
                "id": e.id,
                "role": e.role,
                "content": e.content,
                "created_at": e.created_at.isoformat(),
            }
            for e in entries
        ],
    }


@router.post("/clear-memory")
def clear_memory(
    identity: IdentityPublic = Depends(require_login),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    removed = services.memory.clear(identity.id)
    return {"ok": True, "removed": removed}


@router.get("/usage")
def usage(
    identity: IdentityPublic = Depends(require_login),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    stat = services.usage.get(identity.id)
    return {
        "ok": True,
        "usage": {
            "messages_sent": stat.messages_sent,
            "messages_received": stat.messages_received,
            "last_active_at": stat.last_active_at.isoformat() if stat.last_active_at else None,
        },
    }
