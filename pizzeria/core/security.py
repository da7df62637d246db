"""
Pizzeria — JWT and password utilities

Tokens are issued by the identity backend; this service only needs to
verify them and to mint short-lived ones for internal callers and tests.
"""
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt
from passlib.context import CryptContext

from pizzeria.core.config import get_settings

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def generate_temporary_password() -> str:
    """Random password for accounts created on behalf of phone customers."""
    return secrets.token_urlsafe(9)


def create_access_token(data: dict[str, Any]) -> str:
    payload = data.copy()
    expire = datetime.now(tz=timezone.utc) + timedelta(
        minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload.update({"exp": expire, "type": "access", "jti": str(uuid.uuid4())})
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])


def is_admin_claims(claims: dict[str, Any]) -> bool:
    if claims.get("role") == "admin":
        return True
    email = (claims.get("email") or "").lower()
    return bool(email) and email == settings.SUPER_ADMIN_EMAIL.lower()
