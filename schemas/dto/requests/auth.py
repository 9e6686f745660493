"""
Request DTOs for authentication endpoints.

RegisterRequest               — POST /auth/register
LoginRequest                  — POST /auth/login
RefreshRequest                — POST /auth/refresh
ChangePasswordRequest         — POST /auth/change-password
PhoneOTPRequest               — POST /auth/send-phone-otp, /auth/request-login-otp,
                                POST /auth/checkout/send-otp
VerifyPhoneOTPRequest         — POST /auth/verify-phone-otp, /auth/checkout/verify-otp
VerifyLoginOTPRequest         — POST /auth/verify-login-otp
PasswordResetSendRequest      — POST /auth/password-reset/send-otp
PasswordResetVerifyRequest    — POST /auth/password-reset/verify-otp
PasswordResetSetRequest       — POST /auth/password-reset/set-password

Field values are only shape-checked here; normalisation (phone numbers,
emails) and policy checks (password strength) happen in the services.
``session_id`` is the client-generated id that binds an OTP to one browser
or app instance.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register. Needs email or phone."""

    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(min_length=1, max_length=50, alias="firstName")
    last_name: Optional[str] = Field(default=None, max_length=50, alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    password: str


class LoginRequest(BaseModel):
    """Request body for POST /auth/login. ``identifier`` is an email or phone."""

    model_config = ConfigDict(populate_by_name=True)

    identifier: str
    password: str
    remember_me: bool = Field(default=False, alias="rememberMe")


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken")


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")


class PhoneOTPRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str
    session_id: str = Field(min_length=1, max_length=128, alias="sessionId")


class VerifyPhoneOTPRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str
    code: str
    session_id: str = Field(min_length=1, max_length=128, alias="sessionId")


class VerifyLoginOTPRequest(VerifyPhoneOTPRequest):
    remember_me: bool = Field(default=False, alias="rememberMe")


class PasswordResetSendRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    identifier: str
    session_id: str = Field(min_length=1, max_length=128, alias="sessionId")


class PasswordResetVerifyRequest(PasswordResetSendRequest):
    code: str


class PasswordResetSetRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_token: str = Field(alias="resetToken")
    new_password: str = Field(alias="newPassword")
