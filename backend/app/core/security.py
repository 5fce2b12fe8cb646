"""
Password hashing and access tokens.

Passwords are stored as bcrypt hashes via passlib. Access tokens are HS256
JWTs whose claims are derived from the User row; every token carries a
unique ``jti`` so a single token can be revoked on logout.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from backend.app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def get_password_hash(password: str) -> str:
    """Hash a plain-text password."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a plain-text password against a stored hash."""
    return pwd_context.verify(plain_password, hashed_password)


def access_token_lifetime() -> timedelta:
    return timedelta(minutes=settings.access_token_expire_minutes)


def token_claims(user) -> Dict[str, Any]:
    """
    Claims identifying a user: sub (username), user_id, role and a fresh jti.

    Route guards read ``role`` and ``user_id`` straight from the token, so a
    role change only takes effect on the next login.
    """
    return {
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
        "jti": uuid.uuid4().hex,
    }


def create_access_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed access token for ``user``."""
    claims = token_claims(user)
    claims["exp"] = datetime.now(timezone.utc) + (expires_delta or access_token_lifetime())
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate an access token.

    Returns:
        The claims (sub, user_id, role, jti, exp) when the signature and
        expiry check out, None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
