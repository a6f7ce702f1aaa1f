"""
Authentication and authorization.

Principals are users resolved from a bearer JWT. Login and token issuance
happen elsewhere; this module only verifies tokens and checks permissions.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from impact_api.core.config import settings
from impact_api.core.exceptions import AuthError, PermissionDeniedError
from impact_api.db.database import get_db
from impact_api.models.user import User

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)

# Permission names
IMPACTS_WRITE = "impacts:write"
PROJECTS_WRITE = "projects:write"
CATALOG_WRITE = "catalog:write"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> dict:
    """Verify and decode JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise AuthError()


async def authenticate(token: Optional[str], db: AsyncSession) -> User:
    """Resolve the principal behind a bearer token."""
    if not token:
        raise AuthError("Not authenticated")

    payload = verify_token(token)
    subject = payload.get("sub")
    if subject is None:
        raise AuthError()

    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise AuthError()

    user = await db.get(User, user_id)
    if user is None:
        raise AuthError()
    if not user.is_active:
        raise AuthError("Inactive user")

    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """FastAPI dependency returning the authenticated principal"""
    token = credentials.credentials if credentials else None
    return await authenticate(token, db)


def require_permission(permission: str):
    """Build a dependency that rejects principals lacking ``permission``."""

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_permission(permission):
            logger.warning(
                "Permission denied",
                user_id=current_user.id,
                permission=permission
            )
            raise PermissionDeniedError(permission)
        return current_user

    return checker
