"""
Shared Dependencies for the SocialNet backend.

Provides:
- Authentication dependencies (get_current_user, require_roles)
- Audit context extraction for configuration writes
"""

import logging
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth import decode_access_token
from .config_store import AuditContext
from .database import get_db
from .db_models import DBUser
from .exceptions import AuthenticationError
from .models import User, UserRole

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# =============================================================================
# Authentication Dependency
# =============================================================================

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Get current user from JWT token.

    The role is read from the database rather than the token so that
    demotions take effect immediately.

    Raises:
        HTTPException 401: If token is invalid or user not found
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_access_token(token)
    except AuthenticationError:
        raise credentials_exception

    username = payload.get("sub")
    if not username:
        raise credentials_exception

    db_user = db.query(DBUser).filter(DBUser.username == username).first()
    if db_user is None:
        raise credentials_exception

    return User(id=db_user.id, username=db_user.username, role=UserRole(db_user.role))


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting a route to the given roles.

    Usage:
        @router.post("/admin/config")
        async def set_config(user: User = Depends(require_roles(UserRole.ADMIN))):
            ...
    """
    allowed = set(roles)

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            logger.warning(f"User {current_user.username} ({current_user.role.value}) denied access")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return checker


require_admin = require_roles(UserRole.ADMIN)
require_staff = require_roles(UserRole.ADMIN, UserRole.MODERATOR)

# =============================================================================
# Audit Context
# =============================================================================

def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def audit_context(request: Request, current_user: User) -> AuditContext:
    return AuditContext(
        user_id=str(current_user.id),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
