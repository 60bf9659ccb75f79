# =============================================================================
# Sessions — Password Hashing & Bearer Tokens
# =============================================================================
#
# Humans authenticate to the key management API with a short-lived bearer
# token (a signed JWT); machines authenticate to the gated API with an API
# key. The two never mix: a JWT is not accepted in X-API-KEY, and an API key
# is not a session.
#
# Token claims:
#   sub  — account id (string, as RFC 7519 requires)
#   role — "admin" | "user" (informational; authorization re-reads the
#          account so a demoted or deactivated account loses access at once)
#   iat, exp
# =============================================================================

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

import bcrypt
import jwt

from keygate.config import Settings
from keygate.db.models import UserRole, utcnow

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12


class InvalidTokenError(Exception):
    """The bearer token is malformed, expired or signed with another key."""


@dataclass(frozen=True)
class TokenClaims:
    account_id: int
    role: UserRole


def hash_password(password: str) -> str:
    """Raises ValueError past bcrypt's 72-byte input limit."""
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > 72:
        raise ValueError("Password must be at most 72 bytes")
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """False for OAuth-only accounts (no hash) and for malformed hashes."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            password.encode("utf-8"), password_hash.encode("utf-8"),
        )
    except ValueError as e:
        logger.warning("Password verification failed: %s", e)
        return False


def generate_temporary_password(length: int = 12) -> str:
    """URL-safe random password for admin resets."""
    return secrets.token_urlsafe(length)[:length]


def create_access_token(
    account_id: int, role: UserRole, settings: Settings,
) -> tuple[str, int]:
    """Returns (token, expires_in_seconds)."""
    expires_in = settings.access_token_expire_minutes * 60
    now = utcnow()
    payload = {
        "sub": str(account_id),
        "role": UserRole(role).value,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_in


def decode_access_token(token: str, settings: Settings) -> TokenClaims:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
        return TokenClaims(
            account_id=int(payload["sub"]),
            role=UserRole(payload.get("role", UserRole.USER.value)),
        )
    except (jwt.PyJWTError, ValueError) as e:
        raise InvalidTokenError(str(e)) from e
