"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain async functions
used with FastAPI's Depends() system.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, Request

from errors import AuthenticationError
from services.auth_service import AuthService
from services.login_issuer import ClientContext
from shared.ip_utils import get_client_ip


async def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService wired during startup."""
    return request.app.state.auth_service


async def get_client_context(request: Request) -> ClientContext:
    """IP and User-Agent of the caller, used to describe new sessions."""
    return ClientContext(
        ip=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


async def get_current_claims(
    authorization: Optional[str] = Header(default=None),
    auth_service: AuthService = Depends(get_auth_service),
) -> dict:
    """Verify the ``Authorization: Bearer`` access token and return its claims.

    The session the token was minted for must still be live.
    Raises AuthenticationError (or a token-specific subclass) → 401.
    """
    token = _bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Missing access token")
    return await auth_service.authenticate(token)
