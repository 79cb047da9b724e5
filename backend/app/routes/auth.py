"""
Ariya Backend — Auth Route Handlers
=====================================

What:  Handles the /api/v1/auth endpoints: login, registration, token refresh,
       logout, password reset, email verification and social login.
How:   Each handler declares its pipeline as dependencies
       (rate limit → validated body → auth where needed → AuthService) and
       formats the service result with app/responses.py.
Who:   Called by the web and mobile clients.

Every handler here except logout uses the strict "auth" rate-limit category
(5 requests / 15 minutes per IP).
"""

import logging

from fastapi import APIRouter, Depends, Request
from starlette.responses import JSONResponse

from app import responses
from app.dependencies import get_auth_service, rate_limit, require_auth
from app.middleware.request_id import get_request_context
from app.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResendVerificationQuery,
    ResetPasswordRequest,
    SocialLoginRequest,
    VerifyEmailRequest,
)
from app.schemas.common import ERROR_RESPONSES
from app.services.auth_resolver import AuthResult
from app.services.auth_service import AuthService
from app.services.rate_limiter import RateLimitResult
from app.validation import validate_query, validated_body

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"], responses=ERROR_RESPONSES)

FORGOT_PASSWORD_REPLY = "If an account exists with this email, a password reset link has been sent."
RESEND_VERIFICATION_REPLY = (
    "If an unverified account exists with this email, a new verification link has been sent."
)


@router.post("/login", summary="Log in with email and password")
async def login(
    request: Request,
    _rl: RateLimitResult = Depends(rate_limit("auth")),
    body: LoginRequest = Depends(validated_body(LoginRequest)),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    payload = await service.login(body.email, body.password, ip=get_request_context(request).ip)
    return responses.success(payload.to_json(), "Login successful")


@router.post("/register", status_code=201, summary="Create a planner or vendor account")
async def register(
    _rl: RateLimitResult = Depends(rate_limit("auth")),
    body: RegisterRequest = Depends(validated_body(RegisterRequest)),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """
    Creates an unverified account and mails a verification link.

    No tokens are issued: an unverified account cannot log in, so the client
    is sent to the "check your email" screen instead.
    """
    user = await service.register(body)
    return responses.success(
        {"user": user.to_json()},
        "Registration successful. Please check your email to verify your account.",
        status_code=201,
    )


@router.post("/refresh-token", summary="Rotate a refresh token")
async def refresh_token(
    _rl: RateLimitResult = Depends(rate_limit("auth")),
    body: RefreshTokenRequest = Depends(validated_body(RefreshTokenRequest)),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    payload = await service.refresh(body.refresh_token)
    return responses.success(payload.to_json(), "Tokens refreshed successfully")


@router.post("/logout", summary="End the current session")
async def logout(
    _rl: RateLimitResult = Depends(rate_limit("api")),
    body: LogoutRequest = Depends(validated_body(LogoutRequest, optional=True)),
    auth: AuthResult = Depends(require_auth),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await service.logout(
        auth.user,
        auth.session,
        refresh_token=body.refresh_token,
        all_sessions=body.all_sessions,
    )
    return responses.success(message="Logout successful")


@router.post("/forgot-password", summary="Request a password reset link")
async def forgot_password(
    _rl: RateLimitResult = Depends(rate_limit("auth")),
    body: ForgotPasswordRequest = Depends(validated_body(ForgotPasswordRequest)),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await service.forgot_password(body.email)
    return responses.success(message=FORGOT_PASSWORD_REPLY)


@router.post("/reset-password", summary="Choose a new password with a reset token")
async def reset_password(
    _rl: RateLimitResult = Depends(rate_limit("auth")),
    body: ResetPasswordRequest = Depends(validated_body(ResetPasswordRequest)),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await service.reset_password(body.token, body.password)
    return responses.success(message="Password reset successful. Please log in with your new password.")


@router.post("/verify-email", summary="Confirm an email address")
async def verify_email(
    _rl: RateLimitResult = Depends(rate_limit("auth")),
    body: VerifyEmailRequest = Depends(validated_body(VerifyEmailRequest)),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    user = await service.verify_email(body.token)
    return responses.success({"user": user.to_json()}, "Email verified successfully")


@router.get("/verify-email", summary="Resend the verification link")
async def resend_verification(
    request: Request,
    _rl: RateLimitResult = Depends(rate_limit("auth")),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    query = await validate_query(request, ResendVerificationQuery)
    await service.resend_verification(query.email)
    return responses.success(message=RESEND_VERIFICATION_REPLY)


@router.post("/social-login", summary="Log in with a Google or Facebook token")
async def social_login(
    _rl: RateLimitResult = Depends(rate_limit("auth")),
    body: SocialLoginRequest = Depends(validated_body(SocialLoginRequest)),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    payload = await service.social_login(body)
    return responses.success(payload.to_json(), "Social login successful")
