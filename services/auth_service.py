"""
AuthService — the single entry point the HTTP layer talks to.

Composes AbuseGuard, OTPService, TokenService, SessionService and
PasswordResetService. Every failure leaves here as an AppError subclass;
anything else is an infrastructure fault and propagates to the global
handler.

Access-token claims passed in by the routes carry ``sub`` (user id) and
``sid`` (the refresh token id of the pair, i.e. the caller's session).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union

from pymongo.errors import DuplicateKeyError

from errors import (
    AuthenticationError,
    ConflictError,
    InvalidCredentialError,
    NotFoundError,
    ValidationError,
)
from repositories.user_repository import UserRepository
from schemas.models.base import to_object_id
from schemas.models.user import ROLE_CUSTOMER, UserDoc
from services.abuse_guard import AbuseGuard
from services.login_issuer import AuthResult, ClientContext, LoginIssuer
from services.otp_service import ChallengeStatus, OTPService, VerificationResult
from services.password_reset_service import (
    PasswordResetService,
    ResetGrant,
    ResetRequested,
)
from services.policy import PASSWORD_LOGIN_SCOPE, Purpose
from services.session_service import SessionInfo, SessionService
from services.token_service import ACCESS, REFRESH, TokenPair, TokenService
from shared.crypto import hash_password, reject_password, verify_password
from shared.datetime_utils import utcnow
from shared.logging import get_logger, mask_destination
from shared.validators import (
    normalize_email,
    normalize_identifier,
    normalize_phone,
    validate_password,
)

log = get_logger(__name__)

_INVALID_CREDENTIALS = "Invalid credentials"


@dataclass(frozen=True)
class OTPRequested:
    message: str
    expires_in: int = 0
    destination: Optional[str] = None  # masked


class AuthService:
    def __init__(
        self,
        users: UserRepository,
        tokens: TokenService,
        sessions: SessionService,
        otp: OTPService,
        guard: AbuseGuard,
        login: LoginIssuer,
        password_reset: PasswordResetService,
        password_min_length: int = 8,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._users = users
        self._tokens = tokens
        self._sessions = sessions
        self._otp = otp
        self._guard = guard
        self._login = login
        self._password_reset = password_reset
        self._password_min_length = password_min_length
        self._now = now

    # ── helpers ──────────────────────────────────────────────────────────────

    def _check_password_strength(self, password: str) -> None:
        ok, missing = validate_password(password, self._password_min_length)
        if not ok:
            raise ValidationError(
                "Password does not meet requirements",
                field="password",
                details={"missing_requirements": missing},
            )

    @staticmethod
    def _require_phone(phone: str) -> str:
        normalized = normalize_phone(phone)
        if normalized is None:
            raise ValidationError("Enter a valid phone number", field="phone")
        return normalized

    async def _require_user(self, user_id: str) -> UserDoc:
        oid = to_object_id(user_id)
        user = await self._users.find_by_id(oid) if oid else None
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ── registration & password login ────────────────────────────────────────

    async def register(
        self,
        first_name: str,
        password: str,
        client: ClientContext,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> AuthResult:
        """Create a customer account and sign it in."""
        if not first_name or not first_name.strip():
            raise ValidationError("First name is required", field="first_name")
        if not email and not phone:
            raise ValidationError("Provide an email address or phone number")

        normalized_email = None
        if email:
            normalized_email = normalize_email(email)
            if normalized_email is None:
                raise ValidationError("Enter a valid email address", field="email")
        normalized_phone = self._require_phone(phone) if phone else None
        self._check_password_strength(password)

        if normalized_email and await self._users.find_by_email(normalized_email):
            raise ConflictError("An account with this email already exists", field="email")
        if normalized_phone and await self._users.find_by_phone(normalized_phone):
            raise ConflictError(
                "An account with this phone number already exists", field="phone"
            )

        now = self._now()
        try:
            user = await self._users.create(
                UserDoc(
                    email=normalized_email,
                    phone=normalized_phone,
                    password_hash=hash_password(password),
                    first_name=first_name.strip(),
                    last_name=last_name.strip() if last_name else None,
                    role=ROLE_CUSTOMER,
                    created_at=now,
                    updated_at=now,
                )
            )
        except DuplicateKeyError:
            raise ConflictError("An account with this email or phone already exists")

        log.info("user_registered", user_id=str(user.id))
        return await self._login.complete_login(user, client)

    async def login(
        self,
        identifier: str,
        password: str,
        client: ClientContext,
        remember_me: bool = False,
    ) -> AuthResult:
        """Password login by email or phone.

        Unknown identifiers and wrong passwords raise the same error.
        """
        parsed = normalize_identifier(identifier)
        if parsed is None or not password:
            raise InvalidCredentialError(_INVALID_CREDENTIALS)

        await self._guard.require(parsed.value, PASSWORD_LOGIN_SCOPE)

        user = await self._users.find_by_identifier(parsed)
        if user is None or not user.password_hash:
            matched = reject_password(password)
        else:
            matched = verify_password(password, user.password_hash)
        if not matched:
            log.warning(
                "login_failed",
                identifier=mask_destination(parsed.value),
                reason="invalid_credentials",
            )
            raise InvalidCredentialError(_INVALID_CREDENTIALS)

        return await self._login.complete_login(user, client, remember_me=remember_me)

    # ── passwordless login ───────────────────────────────────────────────────

    async def request_login_otp(self, phone: str, session_id: str) -> OTPRequested:
        """Send a login code. Answers the same way for unknown numbers."""
        normalized = self._require_phone(phone)
        message = "If an account exists for this number, a login code has been sent."
        user = await self._users.find_by_phone(normalized)
        if user is None:
            await self._otp.charge_send(normalized, Purpose.LOGIN, session_id)
            log.info("login_otp_unknown_phone", phone=mask_destination(normalized))
        else:
            await self._otp.issue(normalized, Purpose.LOGIN, session_id)
        return OTPRequested(
            message=message,
            expires_in=self._otp.ttl_seconds(Purpose.LOGIN),
            destination=mask_destination(normalized),
        )

    async def verify_login_otp(
        self,
        phone: str,
        code: str,
        session_id: str,
        client: ClientContext,
        remember_me: bool = False,
    ) -> AuthResult:
        normalized = self._require_phone(phone)
        await self._otp.require_verified(normalized, Purpose.LOGIN, session_id, code)
        user = await self._users.find_by_phone(normalized)
        if user is None:
            raise InvalidCredentialError(_INVALID_CREDENTIALS)
        if not user.is_phone_verified:
            await self._users.mark_phone_verified(user.id, normalized, self._now())
            user = user.model_copy(update={"is_phone_verified": True})
        return await self._login.complete_login(
            user, client, remember_me=remember_me, method="otp"
        )

    # ── token lifecycle ──────────────────────────────────────────────────────

    async def authenticate(self, access_token: str) -> dict:
        """Verify an access token and mark its session as used.

        The token is only honoured while the session it was minted for is
        live, so logout and termination take effect immediately.
        """
        claims = self._tokens.verify(access_token, expected_type=ACCESS)
        session = await self._sessions.find_live(claims.get("sub"), claims.get("sid"))
        if session is None:
            raise AuthenticationError("Session has expired or was revoked")
        await self._sessions.touch(session.token_id)
        return claims

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair.

        The presented token is retired: its session row moves to the new
        token id in one conditional update, so a replayed or concurrently
        used token finds no session and fails.
        """
        claims = self._tokens.verify(refresh_token, expected_type=REFRESH)
        user_id, old_token_id = claims["sub"], claims["jti"]

        oid = to_object_id(user_id)
        user = await self._users.find_by_id(oid) if oid else None
        if user is None:
            raise InvalidCredentialError(_INVALID_CREDENTIALS)

        new_refresh = self._tokens.issue_refresh_token(
            user_id, remember_me=self._tokens.refresh_is_remembered(claims)
        )
        rotated = await self._sessions.rotate(
            user_id, old_token_id, new_refresh.token_id, new_refresh.expires_at
        )
        if rotated is None:
            raise AuthenticationError("Session has expired or was revoked")

        return self._tokens.pair_with(
            new_refresh, user_id, user.role, {"amr": claims.get("amr", ["pwd"])}
        )

    async def logout(self, claims: dict) -> bool:
        """End the caller's own session. Idempotent."""
        return await self._sessions.terminate_by_token(claims.get("sub"), claims.get("sid"))

    async def change_password(
        self,
        claims: dict,
        current_password: str,
        new_password: str,
    ) -> int:
        """Replace the password and sign out every other session.

        Returns:
            Number of other sessions terminated.
        """
        user = await self._require_user(claims.get("sub"))
        if not verify_password(current_password or "", user.password_hash or ""):
            raise InvalidCredentialError(
                "Current password is incorrect", field="current_password"
            )
        self._check_password_strength(new_password)
        if verify_password(new_password, user.password_hash or ""):
            raise ValidationError(
                "New password must differ from the current one", field="new_password"
            )

        await self._users.set_password_hash(
            user.id, hash_password(new_password), self._now()
        )
        terminated = 0
        if claims.get("sid"):
            terminated = await self._sessions.terminate_all_except(
                user.id, claims["sid"]
            )
        log.info("password_changed", user_id=str(user.id), sessions_terminated=terminated)
        return terminated

    # ── phone verification & guest checkout ──────────────────────────────────

    async def request_phone_otp(
        self, claims: dict, phone: str, session_id: str
    ) -> OTPRequested:
        user = await self._require_user(claims.get("sub"))
        normalized = self._require_phone(phone)
        owner = await self._users.find_by_phone(normalized)
        if owner is not None and owner.id != user.id:
            raise ConflictError(
                "This phone number belongs to another account", field="phone"
            )
        if owner is not None and user.is_phone_verified:
            raise ConflictError("Phone number is already verified", field="phone")

        issued = await self._otp.issue(normalized, Purpose.PHONE_VERIFICATION, session_id)
        return OTPRequested(
            message="Verification code sent.",
            expires_in=issued.expires_in,
            destination=mask_destination(normalized),
        )

    async def verify_phone_otp(
        self, claims: dict, phone: str, code: str, session_id: str
    ) -> UserDoc:
        user = await self._require_user(claims.get("sub"))
        normalized = self._require_phone(phone)
        await self._otp.require_verified(
            normalized, Purpose.PHONE_VERIFICATION, session_id, code
        )
        try:
            await self._users.mark_phone_verified(user.id, normalized, self._now())
        except DuplicateKeyError:
            raise ConflictError(
                "This phone number belongs to another account", field="phone"
            )
        log.info("phone_verified", user_id=str(user.id))
        return user.model_copy(update={"phone": normalized, "is_phone_verified": True})

    async def request_checkout_otp(self, phone: str, session_id: str) -> OTPRequested:
        normalized = self._require_phone(phone)
        issued = await self._otp.issue(normalized, Purpose.GUEST_CHECKOUT, session_id)
        return OTPRequested(
            message="Verification code sent.",
            expires_in=issued.expires_in,
            destination=mask_destination(normalized),
        )

    async def verify_checkout_otp(
        self, phone: str, code: str, session_id: str
    ) -> VerificationResult:
        normalized = self._require_phone(phone)
        return await self._otp.require_verified(
            normalized, Purpose.GUEST_CHECKOUT, session_id, code
        )

    async def otp_status(
        self, destination: str, purpose: Union[Purpose, str], session_id: str
    ) -> ChallengeStatus:
        parsed = normalize_identifier(destination)
        if parsed is None:
            raise ValidationError(
                "Enter a valid email address or phone number", field="destination"
            )
        return await self._otp.status(parsed.value, purpose, session_id)

    # ── password reset ───────────────────────────────────────────────────────

    async def request_password_reset(
        self, identifier: str, session_id: str
    ) -> ResetRequested:
        return await self._password_reset.request_reset(identifier, session_id)

    async def confirm_password_reset(
        self, identifier: str, code: str, session_id: str
    ) -> ResetGrant:
        return await self._password_reset.confirm_code(identifier, code, session_id)

    async def complete_password_reset(
        self, reset_token: str, new_password: str, client: ClientContext
    ) -> AuthResult:
        return await self._password_reset.set_new_password(
            reset_token, new_password, client
        )

    # ── profile & sessions ───────────────────────────────────────────────────

    async def get_profile(self, claims: dict) -> UserDoc:
        return await self._require_user(claims.get("sub"))

    async def list_sessions(self, claims: dict) -> list[SessionInfo]:
        return await self._sessions.list(claims.get("sub"), claims.get("sid"))

    async def terminate_session(self, claims: dict, session_id: str) -> None:
        await self._sessions.terminate(session_id, claims.get("sub"))

    async def terminate_other_sessions(self, claims: dict) -> int:
        return await self._sessions.terminate_all_except(
            claims.get("sub"), claims.get("sid")
        )
