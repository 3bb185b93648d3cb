"""
JWT Service for access token creation and validation.

Tokens carry the tenant and user the template API acts on behalf of.
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel

from core.config import JWT_ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, JWT_SECRET_KEY


class TokenPayload(BaseModel):
    """Payload structure for JWT tokens."""
    sub: str  # User ID
    tenant_id: str
    roles: list[str] = []  # ["admin"], ["practitioner"], ["admin", "practitioner"]
    email: Optional[str] = None
    name: Optional[str] = None
    iat: Optional[int] = None  # Set by JWT service
    exp: Optional[int] = None  # Set by JWT service


class JWTService:
    """Service for JWT token operations."""

    ALGORITHM = JWT_ALGORITHM
    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload) -> str:
        """Create a JWT access token."""
        to_encode = payload.model_dump(exclude={"iat", "exp"})
        now = datetime.now(timezone.utc)
        to_encode.update({"exp": now + timedelta(minutes=cls.ACCESS_TOKEN_EXPIRE_MINUTES), "iat": now})
        return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Verify and decode a JWT token. Returns None for expired or invalid tokens."""
        try:
            payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[cls.ALGORITHM])
            return TokenPayload(**payload)
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        except ValueError:
            # Signature is valid but the claims do not match TokenPayload
            return None


jwt_service = JWTService()
