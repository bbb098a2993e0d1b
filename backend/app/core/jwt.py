"""
JWT token utilities.

Tokens are issued by the identity provider; this service only needs to
verify them. ``create_access_token`` exists for tests and local tooling.
"""

from datetime import timedelta
from typing import Optional, Dict, Any

from jose import JWTError, jwt

from backend.app.core.config import settings
from backend.app.core.timeutils import utc_now


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Example payload:
        {
            "sub": "Dr. Ada Lovelace",
            "user_id": 7,
            "exp": 1234567890
        }
    """
    to_encode = data.copy()
    expire = utc_now() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Returns:
        Decoded payload if the signature and expiry are valid, None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
