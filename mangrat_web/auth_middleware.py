"""
Auth "middleware" helpers.

We expose FastAPI dependencies that:
- Read the session token from cookie or Authorization header
- Validate it via the SessionManager
- Return the authenticated identity (or None for optional auth)
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from mangrat.auth.models import IdentityPublic
from mangrat.container import Services
from mangrat.core.exceptions import AuthError


def get_services(request: Request) -> Services:
    return request.app.state.services


def _extract_token(request: Request) -> Optional[str]:
    services: Services = request.app.state.services
    # Prefer cookie for browser flows
    token = request.cookies.get(services.settings.auth.cookie_name)
    if token:
        return token
    # Fallback to Authorization: Bearer <token>
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip() or None
    return None


def require_login(request: Request, services: Services = Depends(get_services)) -> IdentityPublic:
    """
    Dependency for protected routes.

    Raises AuthError (401) if the session is missing, unknown or expired.
    """
    return services.sessions.validate(_extract_token(request) or "")


def optional_login(
    request: Request, services: Services = Depends(get_services)
) -> Optional[IdentityPublic]:
    """Identity for a valid session, None for anonymous or stale-token callers."""
    token = _extract_token(request)
    if not token:
        return None
    try:
        return services.sessions.validate(token)
    except AuthError:
        return None
