"""JWT bearer tokens for dashboard users."""

from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from wa_mailbox.settings import settings

_DEFAULT_SECRET = "dev-secret-key-change-in-production"

if settings.environment == "production" and settings.jwt_secret_key == _DEFAULT_SECRET:
    raise RuntimeError("JWT_SECRET_KEY must be set in production; refusing to sign with the default key")


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Sign a token carrying ``data`` plus an ``exp`` claim.

    Args:
        data: Claims; ``sub`` must be the user id as a string
        expires_delta: Lifetime (JWT_ACCESS_TOKEN_EXPIRE_MINUTES by default)

    Returns:
        Encoded JWT
    """
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    claims = {**data, "exp": datetime.utcnow() + lifetime}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_user_token(user_id: int, tenant_id: int | None, role: str) -> str:
    """Token for a login. Global admins carry ``tenant_id`` None."""
    return create_access_token({"sub": str(user_id), "tenant_id": tenant_id, "role": role})


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verify signature and expiry; None for any invalid token."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
