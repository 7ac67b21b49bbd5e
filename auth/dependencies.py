"""
Authentication dependencies for FastAPI.
"""
from typing import Optional
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.exceptions import Unauthenticated, Forbidden, ConfigurationError
from database.models import User, UserRole
from auth.security import bearer_scheme, decode_access_token
import config


def get_db_session():
    """Get database session."""
    if not config.db:
        raise ConfigurationError("Database not initialized")
    with config.db.get_session() as session:
        yield session


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db_session)
) -> User:
    """
    Get current authenticated user from the bearer token.

    The user must have a profile: a caller without a resolvable role is
    treated as unauthenticated.

    Raises:
        Unauthenticated: missing/invalid token, unknown user or no profile
        Forbidden: account deactivated
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()

    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise Unauthenticated("Invalid authentication credentials")

    user = db.query(User).filter(User.id == payload["sub"]).first()
    if user is None:
        raise Unauthenticated("User not found")

    if not user.is_active:
        raise Forbidden("User account is inactive")

    if user.role is None:
        raise Unauthenticated("User profile not found")

    return user


def require_role(allowed_roles: list):
    """
    Dependency factory for role-based access control.

    Args:
        allowed_roles: List of allowed UserRole values

    Returns:
        Dependency function
    """
    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise Forbidden(
                f"Access denied. Required roles: {', '.join(r.value for r in allowed_roles)}"
            )
        return current_user

    return role_checker


require_admin = require_role([UserRole.ADMIN])
require_student = require_role([UserRole.STUDENT])
