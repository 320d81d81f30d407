"""
Compyy Backend — Authentication Routes
========================================

Endpoints under /api/auth. Successful register, login and refresh set the
`auth-token` HTTP-only cookie in addition to returning the JWT in the body,
so both cookie-based browsers and Bearer-token clients work.

Rate limits (per client IP):
    register, login, forgot-password, reset-password   AUTH_RATE_LIMIT_*
    change-password                                    PASSWORD_CHANGE_*
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.config import settings
from compyy.database import get_db_session
from compyy.dependencies import auth_rate_limit, get_current_user_id, password_change_rate_limit
from compyy.schemas.common import ErrorResponse, MessageResponse
from compyy.schemas.user import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    ResetTokenInfo,
    TokenResponse,
    UserResponse,
)
from compyy.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["Auth"],
    responses={
        400: {"description": "Invalid input", "model": ErrorResponse},
        429: {"description": "Too many attempts", "model": ErrorResponse},
    },
)


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.jwt_expire_days * 24 * 3600,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Email or username taken", "model": ErrorResponse}},
    summary="Create an account",
    dependencies=[Depends(auth_rate_limit)],
)
async def register(
    body: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    user, token = await auth_service.register(db, body)
    set_auth_cookie(response, token)
    return AuthResponse(
        user=UserResponse.model_validate(user),
        token=token,
        message="Account created. Please check your email to confirm your address.",
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={401: {"description": "Invalid credentials", "model": ErrorResponse}},
    summary="Sign in with email and password",
    dependencies=[Depends(auth_rate_limit)],
)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> AuthResponse:
    user, token = await auth_service.login(db, body.email, body.password)
    set_auth_cookie(response, token)
    return AuthResponse(user=UserResponse.model_validate(user), token=token, message="Login successful")


@router.post("/logout", response_model=MessageResponse, summary="Clear the session cookie")
async def logout(response: Response) -> MessageResponse:
    response.delete_cookie(settings.cookie_name, path="/")
    return MessageResponse(message="Logged out successfully")


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"description": "Not signed in", "model": ErrorResponse}},
    summary="The signed-in user",
)
async def me(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return UserResponse.model_validate(await auth_service.get_user(db, user_id))


@router.post("/refresh", response_model=TokenResponse, summary="Issue a fresh session token")
async def refresh(
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    token = await auth_service.refresh_token(db, user_id)
    set_auth_cookie(response, token)
    return TokenResponse(token=token)


@router.post(
    "/change-password",
    response_model=MessageResponse,
    responses={401: {"description": "Current password is incorrect", "model": ErrorResponse}},
    summary="Change the signed-in user's password",
    dependencies=[Depends(password_change_rate_limit)],
)
async def change_password(
    body: ChangePasswordRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.change_password(db, user_id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Email a password reset link",
    description="Responds identically whether or not the account exists.",
    dependencies=[Depends(auth_rate_limit)],
)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    message = await auth_service.initiate_password_reset(db, body.email)
    return MessageResponse(message=message)


@router.get("/reset-password", response_model=ResetTokenInfo, summary="Check a password reset token")
async def validate_reset_token(
    token: str = Query(min_length=1, max_length=256),
    db: AsyncSession = Depends(get_db_session),
) -> ResetTokenInfo:
    user = await auth_service.validate_reset_token(db, token)
    return ResetTokenInfo(valid=True, email=user.email, first_name=user.first_name)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Set a new password with a reset token",
    dependencies=[Depends(auth_rate_limit)],
)
async def reset_password(
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.reset_password(db, body.token, body.password)
    return MessageResponse(message="Password has been reset successfully")


@router.get("/confirm", response_model=MessageResponse, summary="Confirm an email address")
async def confirm_email(
    token: str = Query(min_length=1),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    outcome = await auth_service.confirm_email(db, token)
    return MessageResponse(message=outcome)


@router.post(
    "/resend-confirmation",
    response_model=MessageResponse,
    summary="Send the confirmation email again",
    dependencies=[Depends(auth_rate_limit)],
)
async def resend_confirmation(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    user = await auth_service.get_user(db, user_id)
    if user.is_verified:
        return MessageResponse(message="already-verified")
    await auth_service.send_confirmation(user)
    return MessageResponse(message="Confirmation email sent")
