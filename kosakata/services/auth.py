"""Password hashing, access tokens and role predicates for admin accounts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt
from jwt import InvalidTokenError
from pwdlib import PasswordHash

ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"
ROLES = (ROLE_ADMIN, ROLE_SUPERADMIN)

ALGORITHM = "HS256"
ACCESS_TOKEN_LIFETIME = timedelta(days=30)

password_hash = PasswordHash.recommended()


def hash_password(plain_password: str) -> str:
    return password_hash.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return password_hash.verify(plain_password, hashed_password)
    except Exception:  # noqa: BLE001 - unknown or corrupt hash formats never match
        return False


def has_role(role: Optional[str], allowed: Iterable[str]) -> bool:
    return role is not None and role in set(allowed)


class TokenService:
    """Create and verify HS256 access tokens whose subject is the admin id."""

    def __init__(self, secret_key: str, *, lifetime: timedelta = ACCESS_TOKEN_LIFETIME) -> None:
        self._secret_key = secret_key
        self._lifetime = lifetime

    def create_access_token(self, admin_id: int, *, now: Optional[datetime] = None) -> str:
        issued = now or datetime.now(timezone.utc)
        claims = {"sub": str(admin_id), "iat": issued, "exp": issued + self._lifetime, "type": "access"}
        return jwt.encode(claims, self._secret_key, algorithm=ALGORITHM)

    def verify_access_token(self, token: str) -> Optional[int]:
        """Return the admin id carried by *token*, or ``None`` when invalid."""

        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM])
        except InvalidTokenError:
            return None
        if payload.get("type") != "access":
            return None
        try:
            return int(payload.get("sub"))
        except (TypeError, ValueError):
            return None


__all__ = [
    "ACCESS_TOKEN_LIFETIME",
    "ROLES",
    "ROLE_ADMIN",
    "ROLE_SUPERADMIN",
    "TokenService",
    "has_role",
    "hash_password",
    "verify_password",
]
