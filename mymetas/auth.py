"""Password hashing and session tokens.

Passwords are hashed with passlib's ``CryptContext``; sessions are HS256 JWTs
signed with ``settings.secret_key`` whose ``sub`` claim is the user id.

Example:
    >>> hashed = hash_password("correct horse")
    >>> verify_password("correct horse", hashed)
    True
    >>> token, expires_at = create_session_token(user_id=1)
    >>> decode_session_token(token)
    1
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional

import jwt
from passlib.context import CryptContext

from mymetas.config import settings
from mymetas.exceptions import AuthenticationError
from mymetas.logging import logger
from mymetas.utils import format_iso, redact_token, utc_now

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# =============================================================================
# Passwords
# =============================================================================


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password against its stored hash.

    Unknown or malformed hashes count as a mismatch.
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.warning(f"Unverifiable password hash: {e}")
        return False


# =============================================================================
# Session Tokens
# =============================================================================


def create_session_token(
    user_id: int,
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> tuple[str, str]:
    """Issue a signed bearer token for ``user_id``.

    Args:
        user_id: Authenticated account
        ttl: Token lifetime (defaults to settings.token_ttl)
        now: Issue time (defaults to the current UTC time)

    Returns:
        Tuple of (token, expires_at as ISO8601 string)
    """
    issued = now or utc_now()
    expires = issued + (ttl or settings.token_ttl)
    claims = {
        "sub": str(user_id),
        "iat": issued,
        "exp": expires,
        "jti": uuid.uuid4().hex,
    }
    token = jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)
    logger.debug(f"Issued session token {redact_token(token)} for user {user_id}")
    return token, format_iso(expires.replace(microsecond=0))  # type: ignore[return-value]


def decode_session_token(token: str) -> int:
    """Verify a bearer token and return the user id it was issued for.

    Raises:
        AuthenticationError: If the token is expired, malformed or unsigned
    """
    try:
        claims = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired") from None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected token {redact_token(token)}: {e}")
        raise AuthenticationError("Invalid token") from None

    try:
        return int(claims["sub"])
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token") from None


__all__ = [
    "pwd_context",
    "hash_password",
    "verify_password",
    "create_session_token",
    "decode_session_token",
]
