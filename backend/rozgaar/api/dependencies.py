"""
API dependencies for FastAPI dependency injection.

Provides database sessions and the authenticated caller.
"""
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt.exceptions import InvalidTokenError
from sqlalchemy.orm import Session

from rozgaar.api.middleware.error_handler import UnauthorizedException
from rozgaar.lib.db import get_db as get_db_session
from rozgaar.lib.jwt import get_user_from_token
from rozgaar.models.users import User


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme
security = HTTPBearer()


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> UUID:
    """
    Caller id from the identity provider's bearer token ('sub' claim).

    The id is trusted as given; whether the caller may touch a booking is
    decided by the booking services.

    Raises:
        UnauthorizedException: if the token is invalid or carries no usable subject
    """
    try:
        subject, _ = get_user_from_token(credentials.credentials)
    except InvalidTokenError as e:
        raise UnauthorizedException(f"Could not validate credentials: {str(e)}")
    except KeyError:
        raise UnauthorizedException("Invalid authentication token")

    try:
        return UUID(str(subject))
    except ValueError:
        raise UnauthorizedException("Invalid authentication token")


def get_current_user(
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    """
    Profile row of the authenticated caller.

    Raises:
        UnauthorizedException: if no profile exists for the token's subject
    """
    user = db.get(User, user_id)
    if user is None:
        raise UnauthorizedException("User not found")
    return user
