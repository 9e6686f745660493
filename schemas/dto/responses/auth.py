"""
Response DTOs for authentication endpoints.

UserProfileResponse     — public user fields, never the password hash
TokenPairResponse       — access/refresh pair
AuthResponse            — register / login / verify-login-otp / set-password
OTPSentResponse         — every "send code" endpoint
OTPVerifiedResponse     — checkout OTP verification
OTPStatusResponse       — GET /auth/otp-status
ResetGrantResponse      — POST /auth/password-reset/verify-otp
SessionResponse         — one entry of GET /auth/sessions
SessionListResponse     — GET /auth/sessions
TerminateSessionsResponse — DELETE /auth/sessions
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from schemas.models.user import UserDoc
from services.login_issuer import AuthResult
from services.session_service import SessionInfo
from services.token_service import TokenPair


class UserProfileResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: str
    last_name: Optional[str] = None
    role: str
    is_email_verified: bool
    is_phone_verified: bool
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: UserDoc) -> "UserProfileResponse":
        return cls(
            id=str(user.id),
            email=user.email,
            phone=user.phone,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_email_verified=user.is_email_verified,
            is_phone_verified=user.is_phone_verified,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


class TokenPairResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenPairResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            token_type=pair.token_type,
            expires_in=pair.expires_in,
        )


class AuthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: UserProfileResponse
    tokens: TokenPairResponse

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            user=UserProfileResponse.from_user(result.user),
            tokens=TokenPairResponse.from_pair(result.tokens),
        )


class OTPSentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    expires_in: int = 0
    destination: Optional[str] = None


class OTPVerifiedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    verified: bool


class OTPStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    verified: bool
    expires_at: Optional[datetime] = None
    attempts_remaining: int = 0


class ResetGrantResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_token: str
    expires_at: datetime
    user: UserProfileResponse


class SessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    device: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    ip_address: str
    location: Optional[str] = None
    created_at: datetime
    last_active: datetime
    expires_at: datetime
    is_current: bool

    @classmethod
    def from_info(cls, info: SessionInfo) -> "SessionResponse":
        return cls(
            id=info.id,
            device=info.device,
            browser=info.browser,
            os=info.os,
            ip_address=info.ip_address,
            location=info.location,
            created_at=info.created_at,
            last_active=info.last_active,
            expires_at=info.expires_at,
            is_current=info.is_current,
        )


class SessionListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sessions: list[SessionResponse]
    total: int


class TerminateSessionsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    terminated: int
