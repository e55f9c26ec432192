"""
Security Module - Authentication and Authorization

Supports both API Key and JWT Token authentication. The authenticated user id
is the cache subject, so every request must resolve to a concrete user.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from finadvisor.core.config import settings

logger = logging.getLogger(__name__)

# Security schemes
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
bearer_scheme = HTTPBearer(auto_error=False)


class TokenPayload(BaseModel):
    """JWT Token payload structure"""
    sub: str  # Subject (user_id)
    exp: datetime  # Expiration time
    iat: datetime  # Issued at
    type: str = "access"  # Token type
    role: str = "user"


class AuthenticatedUser(BaseModel):
    """Authenticated user information."""
    user_id: str
    auth_method: str  # "api_key" or "jwt"
    role: str = "user"  # user / admin

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# =============================================================================
# JWT Token Functions
# =============================================================================

def create_access_token(
    subject: str,
    role: str = "user",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: The subject (user_id)
        role: Role claim (user or admin)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))

    payload = {
        "sub": subject,
        "exp": expire,
        "iat": now,
        "type": "access",
        "role": role,
    }

    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_jwt_token(token: str) -> TokenPayload:
    """
    Verify and decode a JWT token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return TokenPayload(**payload)
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


# =============================================================================
# API Key Validation
# =============================================================================

def verify_api_key(api_key: str) -> bool:
    """
    Verify an API key.

    Returns:
        True if valid, False otherwise
    """
    if not settings.api_key:
        # If no API key configured, allow all (development mode)
        logger.warning("No API key configured - allowing all requests")
        return True

    return api_key == settings.api_key


# =============================================================================
# Authentication Dependencies
# =============================================================================

async def require_auth(
    api_key: Optional[str] = Security(api_key_header),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    x_role: Optional[str] = Header(None, alias="X-Role"),
) -> AuthenticatedUser:
    """
    Require authentication via API Key OR JWT Token.

    - API key: trusted backend call; X-User-ID names the user, X-Role may
      grant admin
    - JWT: the ``sub`` claim is the user, the ``role`` claim the role

    Raises:
        HTTPException 401: If no valid authentication provided
    """
    # Try API Key first
    if api_key:
        if not verify_api_key(api_key):
            logger.warning("Invalid API key provided")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key",
            )
        if not x_user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="X-User-ID header required with API key authentication",
            )
        return AuthenticatedUser(
            user_id=x_user_id,
            auth_method="api_key",
            role=x_role or "user",
        )

    # Try JWT Token
    if credentials:
        token_payload = verify_jwt_token(credentials.credentials)
        return AuthenticatedUser(
            user_id=token_payload.sub,
            auth_method="jwt",
            role=token_payload.role,
        )

    # No authentication provided
    logger.warning("No authentication credentials provided")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required. Provide X-API-Key header or Bearer token.",
        headers={"WWW-Authenticate": "Bearer"},
    )
