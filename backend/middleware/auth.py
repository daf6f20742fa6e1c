"""
Admin authentication helpers.

The back office logs in with the configured ADMIN_EMAIL / ADMIN_PASSWORD
(see routes/auth.py) and receives a short-lived HS256 JWT. Admin routes
require `Authorization: Bearer <jwt>` with role == "admin".
"""
import hmac
import logging
from datetime import datetime, timezone, timedelta
from fastapi import HTTPException, Header
from typing import Optional

import jwt

from config import settings
from domain.errors import PermissionDeniedError, UnauthorizedError

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _require_secret() -> str:
    if not settings.jwt_secret:
        raise HTTPException(
            status_code=500,
            detail="Server auth misconfigured (JWT secret missing).",
        )
    return settings.jwt_secret


def _parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def decode_access_token(token: str) -> dict:
    secret = _require_secret()
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Access token expired.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid access token.")


def issue_access_token(*, subject: str, role: str = ADMIN_ROLE) -> str:
    secret = _require_secret()
    now = _now_utc()
    exp = now.replace(microsecond=0) + timedelta(minutes=settings.jwt_access_ttl_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": subject,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def verify_admin_credentials(email: str, password: str) -> bool:
    """Constant-time comparison against the configured admin account."""
    if not settings.admin_email or not settings.admin_password:
        logger.warning("Admin login attempted but ADMIN_EMAIL / ADMIN_PASSWORD are not set")
        return False
    email_ok = hmac.compare_digest(email.strip().lower(), settings.admin_email.strip().lower())
    password_ok = hmac.compare_digest(password, settings.admin_password)
    return email_ok and password_ok


async def require_admin(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> str:
    """Dependency for back-office routes. Returns the admin subject (email)."""
    token = _parse_bearer_token(authorization)
    if not token:
        raise UnauthorizedError("Authentication required. Provide Authorization: Bearer <token>.")
    payload = decode_access_token(token)
    if payload.get("role") != ADMIN_ROLE:
        logger.warning(f"Non-admin token used on admin route (sub={payload.get('sub')})")
        raise PermissionDeniedError("Admin role required for this endpoint.")
    return payload["sub"]
