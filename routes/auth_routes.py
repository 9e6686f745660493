"""
Authentication, OTP and session endpoints under /auth.

Handlers only translate between DTOs and AuthService calls; every rule
lives in the services. Typed failures become JSON errors through the
handlers in errors.register_error_handlers().
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from dependencies import get_auth_service, get_client_context, get_current_claims
from schemas.dto.requests.auth import (
    ChangePasswordRequest,
    LoginRequest,
    PasswordResetSendRequest,
    PasswordResetSetRequest,
    PasswordResetVerifyRequest,
    PhoneOTPRequest,
    RefreshRequest,
    RegisterRequest,
    VerifyLoginOTPRequest,
    VerifyPhoneOTPRequest,
)
from schemas.dto.responses.auth import (
    AuthResponse,
    OTPSentResponse,
    OTPStatusResponse,
    OTPVerifiedResponse,
    ResetGrantResponse,
    SessionListResponse,
    SessionResponse,
    TerminateSessionsResponse,
    TokenPairResponse,
    UserProfileResponse,
)
from schemas.dto.responses.common import ErrorResponse, MessageResponse
from services.auth_service import AuthService
from services.login_issuer import ClientContext
from services.policy import Purpose

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)


# ── Accounts & tokens ────────────────────────────────────────────────────────


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    client: ClientContext = Depends(get_client_context),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    result = await auth.register(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        phone=body.phone,
        password=body.password,
        client=client,
    )
    return AuthResponse.from_result(result)


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    client: ClientContext = Depends(get_client_context),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    result = await auth.login(
        body.identifier, body.password, client, remember_me=body.remember_me
    )
    return AuthResponse.from_result(result)


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh(
    body: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
) -> TokenPairResponse:
    return TokenPairResponse.from_pair(await auth.refresh(body.refresh_token))


@router.post("/logout", response_model=MessageResponse)
async def logout(
    claims: dict = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth.logout(claims)
    return MessageResponse(success=True, message="Logged out")


@router.post("/change-password", response_model=TerminateSessionsResponse)
async def change_password(
    body: ChangePasswordRequest,
    claims: dict = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> TerminateSessionsResponse:
    terminated = await auth.change_password(
        claims, body.current_password, body.new_password
    )
    return TerminateSessionsResponse(terminated=terminated)


@router.get("/profile", response_model=UserProfileResponse)
async def profile(
    claims: dict = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> UserProfileResponse:
    return UserProfileResponse.from_user(await auth.get_profile(claims))


# ── Phone verification ───────────────────────────────────────────────────────


@router.post("/send-phone-otp", response_model=OTPSentResponse)
async def send_phone_otp(
    body: PhoneOTPRequest,
    claims: dict = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> OTPSentResponse:
    sent = await auth.request_phone_otp(claims, body.phone, body.session_id)
    return OTPSentResponse(
        message=sent.message, expires_in=sent.expires_in, destination=sent.destination
    )


@router.post("/verify-phone-otp", response_model=UserProfileResponse)
async def verify_phone_otp(
    body: VerifyPhoneOTPRequest,
    claims: dict = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> UserProfileResponse:
    user = await auth.verify_phone_otp(claims, body.phone, body.code, body.session_id)
    return UserProfileResponse.from_user(user)


# ── Passwordless login ───────────────────────────────────────────────────────


@router.post("/request-login-otp", response_model=OTPSentResponse)
async def request_login_otp(
    body: PhoneOTPRequest,
    auth: AuthService = Depends(get_auth_service),
) -> OTPSentResponse:
    sent = await auth.request_login_otp(body.phone, body.session_id)
    return OTPSentResponse(
        message=sent.message, expires_in=sent.expires_in, destination=sent.destination
    )


@router.post("/verify-login-otp", response_model=AuthResponse)
async def verify_login_otp(
    body: VerifyLoginOTPRequest,
    client: ClientContext = Depends(get_client_context),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    result = await auth.verify_login_otp(
        body.phone, body.code, body.session_id, client, remember_me=body.remember_me
    )
    return AuthResponse.from_result(result)


# ── Guest checkout ───────────────────────────────────────────────────────────


@router.post("/checkout/send-otp", response_model=OTPSentResponse)
async def send_checkout_otp(
    body: PhoneOTPRequest,
    auth: AuthService = Depends(get_auth_service),
) -> OTPSentResponse:
    sent = await auth.request_checkout_otp(body.phone, body.session_id)
    return OTPSentResponse(
        message=sent.message, expires_in=sent.expires_in, destination=sent.destination
    )


@router.post("/checkout/verify-otp", response_model=OTPVerifiedResponse)
async def verify_checkout_otp(
    body: VerifyPhoneOTPRequest,
    auth: AuthService = Depends(get_auth_service),
) -> OTPVerifiedResponse:
    result = await auth.verify_checkout_otp(body.phone, body.code, body.session_id)
    return OTPVerifiedResponse(verified=result.verified)


@router.get("/otp-status", response_model=OTPStatusResponse)
async def otp_status(
    destination: str = Query(...),
    purpose: Purpose = Query(...),
    session_id: str = Query(..., alias="sessionId", min_length=1),
    auth: AuthService = Depends(get_auth_service),
) -> OTPStatusResponse:
    current = await auth.otp_status(destination, purpose, session_id)
    return OTPStatusResponse(
        verified=current.verified,
        expires_at=current.expires_at,
        attempts_remaining=current.attempts_remaining,
    )


# ── Password reset ───────────────────────────────────────────────────────────


@router.post("/password-reset/send-otp", response_model=OTPSentResponse)
async def password_reset_send(
    body: PasswordResetSendRequest,
    auth: AuthService = Depends(get_auth_service),
) -> OTPSentResponse:
    requested = await auth.request_password_reset(body.identifier, body.session_id)
    return OTPSentResponse(message=requested.message, expires_in=requested.expires_in)


@router.post("/password-reset/verify-otp", response_model=ResetGrantResponse)
async def password_reset_verify(
    body: PasswordResetVerifyRequest,
    auth: AuthService = Depends(get_auth_service),
) -> ResetGrantResponse:
    grant = await auth.confirm_password_reset(body.identifier, body.code, body.session_id)
    return ResetGrantResponse(
        reset_token=grant.reset_token,
        expires_at=grant.expires_at,
        user=UserProfileResponse.from_user(grant.user),
    )


@router.post("/password-reset/set-password", response_model=AuthResponse)
async def password_reset_set(
    body: PasswordResetSetRequest,
    client: ClientContext = Depends(get_client_context),
    auth: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    result = await auth.complete_password_reset(body.reset_token, body.new_password, client)
    return AuthResponse.from_result(result)


# ── Sessions ─────────────────────────────────────────────────────────────────


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    claims: dict = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> SessionListResponse:
    sessions = [SessionResponse.from_info(s) for s in await auth.list_sessions(claims)]
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def terminate_session(
    session_id: str,
    claims: dict = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await auth.terminate_session(claims, session_id)
    return MessageResponse(success=True, message="Session terminated")


@router.delete("/sessions", response_model=TerminateSessionsResponse)
async def terminate_other_sessions(
    claims: dict = Depends(get_current_claims),
    auth: AuthService = Depends(get_auth_service),
) -> TerminateSessionsResponse:
    terminated = await auth.terminate_other_sessions(claims)
    return TerminateSessionsResponse(terminated=terminated)
