"""JWT helpers for the bearer tokens issued by the shop's auth service."""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from musicshop.core.config import settings


def create_access_token(data: dict[str, Any], expires_minutes: int | None = None) -> str:
    """Create a signed access token.

    Args:
        data: Claims to embed; ``sub`` must carry the user id
        expires_minutes: Token lifetime, defaults to settings

    Returns:
        Encoded JWT string
    """
    expires = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    to_encode = dict(data)
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expires)
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and verify an access token, returning None when invalid."""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
