"""JWT token verification for callers authenticated by the identity provider.

The identity provider signs HS256 tokens with a shared secret. The backend only
needs the caller's id (``sub`` claim) and role; it never re-derives identity.
``create_access_token`` mirrors the provider's token shape and is used by
local tooling and tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from rozgaar.lib.settings import settings


def create_access_token(
    user_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a user.

    Args:
        user_id: UUID of the user (stored in 'sub' claim)
        role: Account role (worker, employer, customer)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expiration_minutes)

    now = datetime.now(timezone.utc)

    payload = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }

    return jwt.encode(
        payload,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Raises:
        InvalidTokenError: If token is invalid, expired, or signature doesn't match
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


def get_user_from_token(token: str) -> tuple[str, Optional[str]]:
    """Extract user_id and role from a token.

    Returns:
        Tuple of (user_id, role); role is None when the provider omits it

    Raises:
        InvalidTokenError: If token is invalid
        KeyError: If the 'sub' claim is missing
    """
    payload = verify_token(token)
    return payload["sub"], payload.get("role")
