"""
Security utilities - password hashing, JWT tokens

Tokens carry only the user id (sub); role and permissions are looked up
fresh on every request, so a role change takes effect immediately.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from jose import JWTError, jwt

from bookstore.core.config import settings
from bookstore.core.exceptions import UnauthenticatedError


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8")
    )


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt()
    ).decode("utf-8")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    # Ensure sub is always a string per RFC 7519
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "type": "access",
        "jti": str(uuid.uuid4()),
        "iat": now,
    })
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_sub": False}
        )
        return payload
    except JWTError:
        return None


def access_token_for(user_id: int) -> str:
    """Access token whose only claim about the user is its id."""
    return create_access_token({"sub": user_id})


def get_token_subject(token: Optional[str]) -> int:
    """
    User id carried by an access token.

    Raises:
        UnauthenticatedError: Missing, undecodable, expired or non-access token
    """
    if not token:
        raise UnauthenticatedError("Access denied. No token provided.")

    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise UnauthenticatedError("Invalid or expired token")

    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        raise UnauthenticatedError("Invalid or expired token")
