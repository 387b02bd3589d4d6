"""Password hashing (bcrypt) and session token issuance (PyJWT)."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from src.config import settings

JWT_ALGORITHM = "HS256"


def hash_password(password: str, salt: Optional[bytes] = None) -> tuple[str, str]:
    """Return ``(hash, salt)`` as text."""
    salt = salt or bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8"), salt.decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def generate_activation_code(length: int = 5) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def issue_token(user_id: int) -> str:
    """Signed, time-bounded session token for *user_id*."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(days=settings.token_expiry_days),
    }
    return jwt.encode(payload, settings.secret_key, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Optional[int]:
    """User id carried by *token*, or None when it is invalid or expired."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        return None
