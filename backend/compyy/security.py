"""
Compyy Backend — Password Hashing and Token Helpers
=====================================================

What:  bcrypt password hashing, HS256 JWT issue/verify, and opaque one-time
       tokens (password reset, newsletter confirmation).
How:   Session JWTs carry {"userId", "email", "iat", "exp"}. Purpose-bound
       JWTs (email verification) add a "purpose" claim so a session token
       can never be replayed as a verification link and vice versa.
       One-time tokens are random URL-safe strings; only their SHA-256
       digest is persisted.
"""

import hashlib
import logging
import re
import secrets
import unicodedata
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from compyy.config import settings

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 320
MAX_INPUT_LENGTH = 1000

PURPOSE_VERIFY_EMAIL = "verify-email"

# bcrypt only reads the first 72 bytes; bcrypt 5 refuses anything longer
BCRYPT_MAX_PASSWORD_BYTES = 72


# ── Passwords ─────────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return bcrypt.hashpw(
        password.encode("utf-8"), bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    ).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    if len(password.encode("utf-8")) > BCRYPT_MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        logger.warning("Stored password hash could not be parsed")
        return False


# ── Session JWTs ──────────────────────────────────────────────────────────

def create_access_token(user_id: str, email: str) -> str:
    """Issue a session token valid for JWT_EXPIRE_DAYS."""
    now = datetime.now(timezone.utc)
    payload = {
        "userId": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expire_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify a JWT's signature and expiry.

    Returns the payload, or None when the token is expired or invalid.
    """
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError:
        logger.debug("Rejected invalid token")
        return None


def verify_access_token(token: str) -> Optional[Dict[str, Any]]:
    payload = decode_token(token)
    if payload is None or "purpose" in payload or "userId" not in payload:
        return None
    return payload


# ── Purpose-bound JWTs ────────────────────────────────────────────────────

def create_purpose_token(user_id: str, purpose: str, ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {"userId": str(user_id), "purpose": purpose, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_purpose_token(token: str, purpose: str) -> Optional[str]:
    """Return the user id carried by a token issued for `purpose`."""
    payload = decode_token(token)
    if payload is None or payload.get("purpose") != purpose:
        return None
    return payload.get("userId")


# ── One-time tokens ───────────────────────────────────────────────────────

def generate_one_time_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ── Input helpers ─────────────────────────────────────────────────────────

def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return len(email) <= MAX_EMAIL_LENGTH and bool(EMAIL_PATTERN.match(email))


def sanitize_input(value: str, max_length: int = MAX_INPUT_LENGTH) -> str:
    """Strip control characters, trim, and cap free-text input."""
    cleaned = "".join(
        ch for ch in value if ch in "\n\t" or unicodedata.category(ch)[0] != "C"
    )
    return cleaned.strip()[:max_length]
