"""FastAPI dependencies that guard admin-only routes."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from ..services.accounts import AdminService
from ..services.auth import ROLE_ADMIN, ROLE_SUPERADMIN, has_role
from ..services.storage import AdminRecord
from .errors import ApiError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/admins/login", auto_error=False)


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin_service


async def protect(
    token: Optional[str] = Depends(oauth2_scheme),
    admins: AdminService = Depends(get_admin_service),
) -> AdminRecord:
    """Return the admin owning the bearer token or fail with 401."""

    if not token:
        raise ApiError(401, "Not authorized, no token.")
    admin = admins.resolve_token(token)
    if admin is None:
        raise ApiError(401, "Not authorized, token failed.")
    return admin


async def require_admin(admin: AdminRecord = Depends(protect)) -> AdminRecord:
    if not has_role(admin.role, (ROLE_ADMIN, ROLE_SUPERADMIN)):
        raise ApiError(403, "Access denied. Admin role required.")
    return admin


async def require_superadmin(admin: AdminRecord = Depends(protect)) -> AdminRecord:
    if not has_role(admin.role, (ROLE_SUPERADMIN,)):
        raise ApiError(403, "Access denied. Superadmin role required.")
    return admin


__all__ = ["get_admin_service", "oauth2_scheme", "protect", "require_admin", "require_superadmin"]
