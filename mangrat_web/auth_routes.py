"""
FastAPI routes for authentication.

Prefix: /api

Sessions travel as an httpOnly cookie; the token is also returned in the
login body so non-browser clients can send it as a Bearer header.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from mangrat.auth.models import IdentityPublic, Session
from mangrat.container import Services
from mangrat.core.logger import get_logger

from .auth_middleware import _extract_token, get_services, require_login

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


class RegisterRequest(BaseModel):
    name: str = ""
    email: str = ""
    password: str = ""


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class UserPublic(BaseModel):
    id: int
    name: str
    email: str
    plan: str
    created_at: str


def _user_to_public(identity: IdentityPublic) -> UserPublic:
    return UserPublic(
        id=identity.id,
        name=identity.name,
        email=identity.email,
        plan=identity.plan,
        created_at=identity.created_at.isoformat(),
    )


def _set_session_cookie(response: JSONResponse, services: Services, session: Session) -> None:
    """Attach the session token as an httpOnly cookie that lives exactly as long as the session."""
    auth = services.settings.auth
    samesite = auth.cookie_samesite
    response.set_cookie(
        key=auth.cookie_name,
        value=session.token,
        max_age=auth.session_ttl_hours * 60 * 60,
        expires=session.expires_at,
        httponly=True,
        # Browsers drop SameSite=None cookies that are not Secure
        secure=services.settings.app.is_production or samesite == "none",
        samesite=samesite,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, services: Services = Depends(get_services)) -> Dict[str, Any]:
    """
    Register a new identity on the basic plan.

    Response:
        { "ok": true, "message": "User created", "userId": 1 }
    """
    identity_id = services.credentials.register(body.name, body.email, body.password)
    return {"ok": True, "message": "User created", "userId": identity_id}


@router.post("/login")
def login(body: LoginRequest, services: Services = Depends(get_services)) -> JSONResponse:
    """Check credentials, open a session and set the session cookie."""
    identity = services.credentials.verify(body.email, body.password)
    session = services.sessions.issue(identity.id)
    response = JSONResponse(
        content={
            "ok": True,
            "user": _user_to_public(identity.public()).model_dump(),
            "token": session.token,
            "expiresAt": session.expires_at.isoformat(),
        }
    )
    _set_session_cookie(response, services, session)
    return response


@router.post("/logout")
def logout(
    request: Request,
    identity: IdentityPublic = Depends(require_login),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """Revoke the current session and clear the cookie."""
    services.sessions.revoke(_extract_token(request) or "")
    logger.info("Logged out", identity_id=identity.id)
    response = JSONResponse({"ok": True, "message": "Logged out"})
    response.delete_cookie(services.settings.auth.cookie_name)
    return response


@router.get("/me")
def me(identity: IdentityPublic = Depends(require_login)) -> Dict[str, Any]:
    """Return the current authenticated identity."""
    return {"ok": True, "user": _user_to_public(identity).model_dump()}


@router.post("/upgrade")
def upgrade(
    identity: IdentityPublic = Depends(require_login),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Move the current identity to the premium plan."""
    plan = services.credentials.upgrade(identity.id)
    return {"ok": True, "plan": plan}
