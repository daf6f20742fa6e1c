"""
Auth endpoints — admin login.

Flow:
  1) POST /auth/login {email, password} -> JWT access token
  2) Admin routes send Authorization: Bearer <token>
"""

import logging

from fastapi import APIRouter, Depends

from config import settings
from domain.errors import UnauthorizedError
from domain.responses import success_response
from middleware.auth import issue_access_token, require_admin, verify_admin_credentials
from middleware.rate_limit import rate_limit
from models import AdminLoginRequest, AdminTokenResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(
    request: AdminLoginRequest,
    _rate=Depends(rate_limit(max_requests=10, window_seconds=300)),
):
    if not verify_admin_credentials(request.email, request.password):
        logger.warning(f"Failed admin login for {request.email!r}")
        raise UnauthorizedError("Invalid email or password.")

    token = issue_access_token(subject=request.email.strip().lower())
    logger.info(f"Admin login: {request.email}")
    body = AdminTokenResponse(
        access_token=token,
        expires_in_seconds=settings.jwt_access_ttl_minutes * 60,
    )
    return success_response(data=body.model_dump(by_alias=True))


@router.get("/me")
async def me(admin: str = Depends(require_admin)):
    return success_response(data={"email": admin, "role": "admin"})
