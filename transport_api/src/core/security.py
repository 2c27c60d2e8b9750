from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from src.core.settings import AppSettings, get_app_settings

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# PUBLIC_INTERFACE
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password using bcrypt."""
    return _pwd_context.verify(plain_password, hashed_password)


# PUBLIC_INTERFACE
def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    return _pwd_context.hash(password)


# PUBLIC_INTERFACE
def create_session_token(
    user_id: int,
    settings: Optional[AppSettings] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Create the signed token stored in the session cookie.

    The token only carries the user id; tenant and role are always re-read
    from the user row so that a stale cookie cannot pin an old tenant.
    """
    settings = settings or get_app_settings()
    now = datetime.now(tz=timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.SESSION_EXPIRE_MINUTES)
    payload: Dict[str, Any] = {"sub": str(user_id), "iat": now, "exp": expire, "type": "session"}
    return jwt.encode(payload, settings.SESSION_SECRET_KEY, algorithm=settings.SESSION_ALGORITHM)


# PUBLIC_INTERFACE
def decode_session_token(token: str, settings: Optional[AppSettings] = None) -> Dict[str, Any]:
    """Decode and validate a session token; raises JWTError if invalid/expired."""
    settings = settings or get_app_settings()
    claims = jwt.decode(token, settings.SESSION_SECRET_KEY, algorithms=[settings.SESSION_ALGORITHM])
    if claims.get("type") != "session":
        raise JWTError("Not a session token")
    return claims


# PUBLIC_INTERFACE
def get_session_user_id(token: str, settings: Optional[AppSettings] = None) -> Optional[int]:
    """Return the user id carried by a session token, or None when the token is invalid."""
    try:
        claims = decode_session_token(token, settings)
        return int(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        return None
