"""
LoginIssuer — the last step of every successful sign-in.

Password login, OTP login, registration and password reset all end the same
way: issue a token pair, record a session under the refresh token's id and
stamp the user's last login.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from repositories.user_repository import UserRepository
from schemas.models.user import UserDoc
from services.session_service import SessionService
from services.token_service import TokenPair, TokenService
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ClientContext:
    """Request metadata used to describe a new session."""

    ip: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class AuthResult:
    user: UserDoc
    tokens: TokenPair


class LoginIssuer:
    def __init__(
        self,
        tokens: TokenService,
        sessions: SessionService,
        users: UserRepository,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._tokens = tokens
        self._sessions = sessions
        self._users = users
        self._now = now

    async def complete_login(
        self,
        user: UserDoc,
        client: ClientContext,
        remember_me: bool = False,
        method: str = "pwd",
    ) -> AuthResult:
        pair = self._tokens.issue_pair(
            str(user.id), user.role, remember_me=remember_me, extra_claims={"amr": [method]}
        )
        await self._sessions.record(
            user.id,
            pair.token_id,
            self._sessions.describe_device(client.user_agent),
            client.ip,
            pair.refresh_expires_at,
        )
        now = self._now()
        await self._users.record_login(user.id, now)
        log.info("login_completed", user_id=str(user.id), method=method)
        return AuthResult(user=user.model_copy(update={"last_login_at": now}), tokens=pair)

    async def revoke_all_sessions(self, user_id: Any) -> int:
        return await self._sessions.terminate_all(user_id)
