"""
Authentication dependencies for FastAPI.

Authentication itself belongs to the identity provider. These dependencies
only resolve an optional bearer token into the ``Actor`` used for activity
attribution; anonymous calls proceed with ``None``.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.events import Actor
from backend.app.core.exceptions import AuthenticationError
from backend.app.core.jwt import decode_access_token
from backend.app.db.session import get_db
from backend.app.models.user import User

# HTTP Bearer security scheme; a missing header is not an error
security = HTTPBearer(auto_error=False)


async def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> Optional[Actor]:
    """
    Resolve the calling user, if a token was supplied.

    Checks:
    1. Validates JWT token signature and expiry
    2. Verifies the user exists and is active

    Returns:
        Actor for the caller, or None for anonymous calls

    Raises:
        AuthenticationError: 401 if a supplied token cannot be resolved
    """
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError()

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    user = await db.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is inactive")

    return Actor(id=user.id, name=user.name)
