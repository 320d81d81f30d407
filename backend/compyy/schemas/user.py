"""
Compyy Backend — User and Auth Schemas
========================================

Secrets never leave the service layer: password hashes and reset token
digests have no field on any response model.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from compyy.schemas.common import CamelModel


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class UserResponse(CamelModel):
    """The signed-in user's own profile."""

    id: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    school: Optional[str] = None
    grade: Optional[str] = None
    subject: Optional[str] = None
    is_verified: bool = False
    raffle_tickets: int = 0
    created_at: datetime
    updated_at: datetime


class PublicUserResponse(CamelModel):
    """Another user's profile as seen in listings and search."""

    id: uuid.UUID
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    school: Optional[str] = None
    subject: Optional[str] = None
    created_at: datetime


class UserListResponse(CamelModel):
    users: List[PublicUserResponse]
    total: int
    limit: int
    offset: int


class UserStatsResponse(CamelModel):
    total_games: int
    public_games: int
    private_games: int
    games_by_type: Dict[str, int]


class AuthResponse(CamelModel):
    user: UserResponse
    token: str
    message: str = "Success"


class TokenResponse(CamelModel):
    token: str


class ResetTokenInfo(CamelModel):
    valid: bool = True
    email: str
    first_name: Optional[str] = None


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class RegisterRequest(CamelModel):
    email: str = Field(max_length=320)
    password: str = Field(max_length=128)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    username: Optional[str] = Field(default=None, max_length=50)
    referral_code: Optional[str] = Field(default=None, max_length=16)


class LoginRequest(CamelModel):
    email: str = Field(max_length=320)
    password: str = Field(max_length=128)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(max_length=128)
    new_password: str = Field(max_length=128)


class ForgotPasswordRequest(CamelModel):
    email: str = Field(max_length=320)


class ResetPasswordRequest(CamelModel):
    token: str = Field(min_length=1, max_length=256)
    password: str = Field(max_length=128)


class UserUpdate(CamelModel):
    """Partial profile update; only fields present in the body are applied."""

    email: Optional[str] = Field(default=None, max_length=320)
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    username: Optional[str] = Field(default=None, max_length=50)
    profile_image: Optional[str] = Field(default=None, max_length=500)
    bio: Optional[str] = Field(default=None, max_length=1000)
    school: Optional[str] = Field(default=None, max_length=200)
    grade: Optional[str] = Field(default=None, max_length=50)
    subject: Optional[str] = Field(default=None, max_length=100)
