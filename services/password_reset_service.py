"""
PasswordResetService — OTP-gated password reset.

    request_reset(identifier)        → code sent to the account's phone
                                       (email when no phone is on file)
    confirm_code(identifier, code)   → single-use reset token (15 min)
    set_new_password(token, pw)      → password replaced, every session
                                       revoked, fresh login issued

request_reset() answers the same way whether or not the account exists.
Reset tokens are stored as SHA-256 digests and claimed with one atomic
update, so a token can complete the flow at most once.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from errors import ConflictError, ExpiredError, NotFoundError, ValidationError
from repositories.reset_token_repository import ResetTokenRepository
from repositories.user_repository import UserRepository
from schemas.models.reset_token import PasswordResetTokenDoc
from schemas.models.user import UserDoc
from services.login_issuer import AuthResult, ClientContext, LoginIssuer
from services.otp_service import OTPService
from services.policy import Purpose
from shared.crypto import hash_password, hash_token
from shared.datetime_utils import ensure_utc, utcnow
from shared.generators import generate_secure_token
from shared.logging import get_logger
from shared.validators import Identifier, normalize_identifier, validate_password

log = get_logger(__name__)


@dataclass(frozen=True)
class ResetRequested:
    message: str
    expires_in: int = 0


@dataclass(frozen=True)
class ResetGrant:
    reset_token: str
    expires_at: datetime
    user: UserDoc


_RESET_SENT = "If an account exists for this identifier, a reset code has been sent."


def _parse_identifier(identifier: str) -> Identifier:
    parsed = normalize_identifier(identifier)
    if parsed is None:
        raise ValidationError(
            "Enter a valid email address or phone number", field="identifier"
        )
    return parsed


def reset_destination(user: UserDoc) -> str:
    """Where reset codes for *user* are delivered."""
    return user.phone or user.email


class PasswordResetService:
    def __init__(
        self,
        users: UserRepository,
        reset_tokens: ResetTokenRepository,
        otp: OTPService,
        login: LoginIssuer,
        reset_token_ttl_seconds: int = 900,
        password_min_length: int = 8,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._users = users
        self._reset_tokens = reset_tokens
        self._otp = otp
        self._login = login
        self._ttl = reset_token_ttl_seconds
        self._password_min_length = password_min_length
        self._now = now

    async def _find_user(self, identifier: Identifier) -> Optional[UserDoc]:
        return await self._users.find_by_identifier(identifier)

    async def request_reset(self, identifier: str, session_id: str) -> ResetRequested:
        parsed = _parse_identifier(identifier)
        user = await self._find_user(parsed)
        # Sends are counted per requested identifier, known or not
        if user is None:
            await self._otp.charge_send(parsed.value, Purpose.PASSWORD_RESET, session_id)
            log.info("password_reset_unknown_identifier", kind=parsed.kind)
        else:
            await self._otp.issue(
                reset_destination(user),
                Purpose.PASSWORD_RESET,
                session_id,
                rate_key=parsed.value,
            )
            log.info("password_reset_requested", user_id=str(user.id))
        return ResetRequested(
            message=_RESET_SENT,
            expires_in=self._otp.ttl_seconds(Purpose.PASSWORD_RESET),
        )

    async def confirm_code(
        self, identifier: str, code: str, session_id: str
    ) -> ResetGrant:
        """Exchange a verified reset code for a reset token.

        An unknown identifier fails like one with no outstanding code.
        """
        parsed = _parse_identifier(identifier)
        user = await self._find_user(parsed)
        destination = reset_destination(user) if user else parsed.value

        await self._otp.require_verified(
            destination, Purpose.PASSWORD_RESET, session_id, code
        )
        if user is None:
            raise NotFoundError("Account not found")

        now = self._now()
        await self._reset_tokens.revoke_unused(user.id, now)
        reset_token = generate_secure_token(32)
        expires_at = now + timedelta(seconds=self._ttl)
        await self._reset_tokens.create(
            PasswordResetTokenDoc(
                token_hash=hash_token(reset_token),
                user_id=user.id,
                identifier=parsed.value,
                created_at=now,
                expires_at=expires_at,
            )
        )
        log.info("password_reset_token_issued", user_id=str(user.id))
        return ResetGrant(reset_token=reset_token, expires_at=expires_at, user=user)

    async def set_new_password(
        self,
        reset_token: str,
        new_password: str,
        client: ClientContext,
    ) -> AuthResult:
        """Consume *reset_token*, store the new password and log the user in.

        Raises:
            NotFoundError: unknown token.
            ExpiredError: the token's lifetime has elapsed.
            ConflictError: the token was already used.
            ValidationError: the new password is too weak (token left unused).
        """
        if not reset_token:
            raise ValidationError("Reset token is required", field="reset_token")
        ok, missing = validate_password(new_password, self._password_min_length)
        if not ok:
            raise ValidationError(
                "Password does not meet requirements",
                field="password",
                details={"missing_requirements": missing},
            )

        token_hash = hash_token(reset_token)
        now = self._now()
        claimed = await self._reset_tokens.claim(token_hash, now)
        if claimed is None:
            existing = await self._reset_tokens.find_by_hash(token_hash)
            if existing is None:
                raise NotFoundError("Reset token not found")
            if existing.used_at is not None:
                raise ConflictError("Reset token has already been used")
            if ensure_utc(existing.expires_at) <= now:
                raise ExpiredError("Reset token has expired")
            raise ConflictError("Reset token has already been used")

        user = await self._users.find_by_id(claimed.user_id)
        if user is None:
            raise NotFoundError("Account not found")

        await self._users.set_password_hash(user.id, hash_password(new_password), now)
        revoked = await self._login.revoke_all_sessions(user.id)
        log.info(
            "password_reset_completed", user_id=str(user.id), sessions_revoked=revoked
        )
        return await self._login.complete_login(user, client, method="reset")
