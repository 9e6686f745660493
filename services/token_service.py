"""
TokenService — mints and verifies signed access/refresh JWTs.

RS256 is used when both keys are configured, HS256 with JWT_SECRET
otherwise. Keys are read once, at construction. Rotating them invalidates
every outstanding token; nothing here migrates old tokens.

Access tokens are stateless and live for minutes. Refresh tokens carry a
``jti`` that doubles as the session key in the session registry; verify()
checks signature and expiry only, so callers must also confirm the session
is still live before honouring a refresh token.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import jwt

from config import JWTSettings
from errors import InvalidSignatureError, MalformedTokenError, TokenExpiredError
from shared.datetime_utils import utcnow
from shared.generators import generate_token_id
from shared.logging import get_logger

log = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class IssuedToken:
    token: str
    token_id: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    token_id: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    expires_in: int = 0
    token_type: str = "Bearer"


class TokenService:
    def __init__(
        self, settings: JWTSettings, now: Callable[[], datetime] = utcnow
    ) -> None:
        self._settings = settings
        self._now = now
        if settings.use_rs256:
            # Support keys provided via env with literal \n sequences
            self._signing_key: Any = settings.jwt_private_key.replace("\\n", "\n")
            self._verify_key: Any = settings.jwt_public_key.replace("\\n", "\n")
            self._algorithm = "RS256"
        else:
            if not settings.jwt_secret:
                raise RuntimeError(
                    "JWT_SECRET must be set when RS256 keys are not provided"
                )
            self._signing_key = self._verify_key = settings.jwt_secret
            self._algorithm = "HS256"

    @property
    def access_ttl_seconds(self) -> int:
        return self._settings.access_token_ttl_seconds

    def _encode(
        self, subject_id: str, token_type: str, ttl_seconds: int, claims: dict
    ) -> tuple[str, str, datetime]:
        now = self._now()
        expires_at = now + timedelta(seconds=ttl_seconds)
        token_id = generate_token_id()
        payload = {
            **claims,
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "sub": str(subject_id),
            "type": token_type,
            "jti": token_id,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._signing_key, algorithm=self._algorithm)
        return token, token_id, expires_at

    def issue_access_token(
        self,
        subject_id: str,
        role: str,
        extra_claims: Optional[dict] = None,
    ) -> str:
        claims = dict(extra_claims or {})
        claims["role"] = role
        token, _, _ = self._encode(
            subject_id, ACCESS, self._settings.access_token_ttl_seconds, claims
        )
        return token

    def issue_refresh_token(
        self, subject_id: str, remember_me: bool = False
    ) -> IssuedToken:
        ttl = (
            self._settings.remember_me_refresh_ttl_seconds
            if remember_me
            else self._settings.refresh_token_ttl_seconds
        )
        claims = {"rmb": True} if remember_me else {}
        token, token_id, expires_at = self._encode(subject_id, REFRESH, ttl, claims)
        return IssuedToken(token=token, token_id=token_id, expires_at=expires_at)

    def issue_pair(
        self,
        subject_id: str,
        role: str,
        remember_me: bool = False,
        extra_claims: Optional[dict] = None,
    ) -> TokenPair:
        """Issue a refresh token and an access token bound to it via ``sid``."""
        refresh = self.issue_refresh_token(subject_id, remember_me=remember_me)
        return self.pair_with(refresh, subject_id, role, extra_claims)

    def pair_with(
        self,
        refresh: IssuedToken,
        subject_id: str,
        role: str,
        extra_claims: Optional[dict] = None,
    ) -> TokenPair:
        """Issue an access token for an already-minted refresh token."""
        claims = dict(extra_claims or {})
        claims["sid"] = refresh.token_id
        access = self.issue_access_token(subject_id, role, claims)
        return TokenPair(
            access_token=access,
            refresh_token=refresh.token,
            token_id=refresh.token_id,
            access_expires_at=self._now()
            + timedelta(seconds=self._settings.access_token_ttl_seconds),
            refresh_expires_at=refresh.expires_at,
            expires_in=self._settings.access_token_ttl_seconds,
        )

    def verify(self, token: str, expected_type: str = ACCESS) -> dict:
        """Decode *token* and return its claims.

        Raises:
            TokenExpiredError: ``exp`` has passed.
            InvalidSignatureError: the signature does not match our key.
            MalformedTokenError: anything else, including a token of the
                wrong type or from another issuer/audience.
        """
        if not token:
            raise MalformedTokenError("Missing token")
        try:
            claims = jwt.decode(
                token,
                self._verify_key,
                algorithms=[self._algorithm],
                audience=self._settings.jwt_audience,
                issuer=self._settings.jwt_issuer,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidSignatureError:
            log.warning("token_signature_invalid", expected_type=expected_type)
            raise InvalidSignatureError("Token signature is invalid")
        except jwt.InvalidTokenError as e:
            raise MalformedTokenError(f"Malformed token: {type(e).__name__}")

        if claims.get("type") != expected_type:
            raise MalformedTokenError(f"Expected a {expected_type} token")
        return claims

    def refresh_is_remembered(self, claims: dict) -> bool:
        return bool(claims.get("rmb"))
