"""
Authentication and authorization dependencies for FastAPI.

Provides dependency injection functions for user authentication,
role-based access control, and tenant isolation enforcement.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from services.jwt_service import jwt_service, TokenPayload

logger = logging.getLogger(__name__)


class UserContext:
    """Authenticated user context extracted from JWT token."""

    def __init__(
        self,
        user_id: int,
        tenant_id: str,
        roles: list[str],
        email: Optional[str] = None,
        name: Optional[str] = None,
    ):
        self.user_id = user_id
        self.tenant_id = tenant_id
        self.roles = roles  # List of roles: ["admin"], ["practitioner"], etc.
        self.email = email
        self.name = name

    def has_role(self, role: str) -> bool:
        """Check if user has a specific role."""
        return role in self.roles

    def __repr__(self) -> str:
        return f"UserContext(user_id={self.user_id}, tenant_id='{self.tenant_id}', roles={self.roles})"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None
    return jwt_service.verify_token(credentials.credentials)


def get_current_user(
    payload: Optional[TokenPayload] = Depends(get_token_payload),
) -> UserContext:
    """Get authenticated user context from JWT token."""
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication credentials not provided"
        )

    try:
        user_id = int(payload.sub)
    except ValueError:
        logger.warning(f"Rejected token with non-numeric subject {payload.sub!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    if not payload.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid tenant token"
        )

    return UserContext(
        user_id=user_id,
        tenant_id=payload.tenant_id,
        roles=payload.roles,
        email=payload.email,
        name=payload.name,
    )


# Role-based authorization dependencies
def require_admin_role(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require admin role."""
    if not user.has_role("admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user


def require_read_access(user: UserContext = Depends(get_current_user)) -> UserContext:
    """
    Require read access to tenant data.

    Any authenticated tenant user qualifies, including users with no roles.
    """
    return user


def ensure_tenant_access(user: UserContext, tenant_id: Optional[str] = None) -> str:
    """
    Enforce tenant isolation - users can only act on their own tenant.

    Returns:
        The tenant the request is scoped to
    """
    if tenant_id is not None and tenant_id != user.tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this tenant"
        )
    return user.tenant_id
