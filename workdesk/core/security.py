"""Password hashing and session token issue/validation.

Tokens are routing hints: they carry the user id and the workspace that was
current at issuance, never a role or permission claim. Everything that
matters for authorization is re-read from the database on each request.
"""

import hashlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from workdesk.core.config import settings
from workdesk.core.exceptions import AuthenticationError, ValidationError

logger = logging.getLogger("workdesk.auth")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

INVALID_TOKEN_MESSAGE = "Invalid or expired token"

# bcrypt only reads the first 72 bytes and bcrypt>=5 refuses anything longer.
MAX_PASSWORD_BYTES = 72
PASSWORD_TOO_LONG_MESSAGE = f"Password must be at most {MAX_PASSWORD_BYTES} bytes"


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    if password_too_long(password):
        raise ValidationError(PASSWORD_TOO_LONG_MESSAGE)
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash.

    A stored hash that bcrypt cannot parse verifies as ``False``.
    """
    if password_too_long(plain_password):
        return False
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    try:
        return bcrypt.checkpw(pwd_bytes, hashed_bytes)
    except ValueError:
        logger.warning("Stored password hash could not be parsed")
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password(uuid.uuid4().hex)


def verify_credentials(user, plain_password: str) -> bool:
    """Check a login secret for a possibly-missing user.

    When ``user`` is None a comparison against a throwaway hash still runs,
    so an unknown account costs the same as a wrong password.
    """
    if user is None:
        verify_password(plain_password, _dummy_hash())
        return False
    return verify_password(plain_password, user.hashed_password)


@dataclass(frozen=True)
class TokenClaims:
    """Decoded contents of a session token."""

    user_id: int
    workspace_id: Optional[int]
    token_type: str
    jti: str
    expires_at: datetime


def _encode(user_id: int, workspace_id: Optional[int], token_type: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": str(user_id),
        "wid": workspace_id,
        "type": token_type,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(
    user_id: int,
    workspace_id: Optional[int] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed, short-lived access token."""
    return _encode(
        user_id,
        workspace_id,
        ACCESS_TOKEN_TYPE,
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES),
    )


def create_refresh_token(user_id: int, workspace_id: Optional[int] = None) -> str:
    """Create a JWT refresh token."""
    return _encode(
        user_id,
        workspace_id,
        REFRESH_TOKEN_TYPE,
        timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS),
    )


def decode_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> TokenClaims:
    """Decode and validate a JWT token.

    Every failure mode raises the same ``AuthenticationError``.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError(INVALID_TOKEN_MESSAGE)

    if payload.get("type") != expected_type:
        raise AuthenticationError(INVALID_TOKEN_MESSAGE)

    try:
        user_id = int(payload["sub"])
        workspace_id = payload.get("wid")
        if workspace_id is not None:
            workspace_id = int(workspace_id)
        return TokenClaims(
            user_id=user_id,
            workspace_id=workspace_id,
            token_type=payload["type"],
            jti=str(payload.get("jti", "")),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError(INVALID_TOKEN_MESSAGE)


def hash_token(token: str) -> str:
    """SHA-256 digest used to store refresh tokens."""
    return hashlib.sha256(token.encode()).hexdigest()
