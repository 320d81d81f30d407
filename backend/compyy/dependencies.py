"""
Compyy Backend — Shared FastAPI Dependencies
==============================================

What:  Request authentication and the stricter per-endpoint rate limits.
How:   A request is authenticated by `Authorization: Bearer <jwt>` or by
       the `auth-token` HTTP-only cookie set on login. The credential
       limiters live on `app.state` (created in create_app) so each
       application instance, including every test client, starts clean.
"""

import logging
import uuid
from typing import Optional

from fastapi import Request

from compyy.config import settings
from compyy.exceptions import AuthenticationError, RateLimitExceededError
from compyy.middleware.rate_limit import SlidingWindowLimiter, client_ip
from compyy.security import verify_access_token
from compyy.services.play_service import PlaySessionStore

logger = logging.getLogger(__name__)


def _token_from_request(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.cookie_name) or None


def get_optional_user_id(request: Request) -> Optional[uuid.UUID]:
    """The caller's user id, or None for anonymous or invalid credentials."""
    token = _token_from_request(request)
    if not token:
        return None
    payload = verify_access_token(token)
    if payload is None:
        return None
    try:
        return uuid.UUID(str(payload["userId"]))
    except ValueError:
        return None


def get_current_user_id(request: Request) -> uuid.UUID:
    """
    Raises:
        AuthenticationError when no valid token is present (HTTP 401).
    """
    token = _token_from_request(request)
    if not token:
        raise AuthenticationError("Authentication required")
    user_id = get_optional_user_id(request)
    if user_id is None:
        raise AuthenticationError("Invalid or expired token")
    return user_id


# ── Credential endpoint rate limits ───────────────────────────────────────

def _enforce(limiter: SlidingWindowLimiter, request: Request) -> None:
    retry_after = limiter.hit(client_ip(request))
    if retry_after is not None:
        raise RateLimitExceededError(
            retry_after=retry_after,
            message=f"Too many attempts. Please try again in {retry_after} seconds.",
        )


def auth_rate_limit(request: Request) -> None:
    """register, login, forgot-password and reset-password."""
    _enforce(request.app.state.auth_limiter, request)


def password_change_rate_limit(request: Request) -> None:
    _enforce(request.app.state.password_change_limiter, request)


def get_play_sessions(request: Request) -> PlaySessionStore:
    return request.app.state.play_sessions
