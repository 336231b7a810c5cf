"""Bearer token verification for marketplace routes.

Tokens are issued by the identity provider and signed with the shared
``jwt_secret``. This module only verifies them and exposes the caller to
FastAPI routes:

1. ``get_current_user`` turns a bearer token into a ``CurrentUser``
2. ``create_access_token`` mints tokens for service accounts and tests
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt
from pydantic import BaseModel

from config import settings_conf
from users import UserRole

# Configure logging
logger = logging.getLogger(__name__)

# Constants
ACCESS_TOKEN_EXPIRY_HOURS = 24
JWT_SECRET = settings_conf['jwt_secret']
JWT_ALGORITHM = settings_conf['jwt_algorithm']

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class TokenExpiredError(AuthError):
    """Raised when a token has expired."""
    pass

class InvalidTokenError(AuthError):
    """Raised when a token cannot be decoded or lacks required claims."""
    pass

class CurrentUser(BaseModel):
    """The authenticated caller."""
    id: UUID
    role: UserRole
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

def create_access_token(
    user_id: UUID,
    role: UserRole,
    email: Optional[str] = None,
    expires_in: timedelta = timedelta(hours=ACCESS_TOKEN_EXPIRY_HOURS)
) -> str:
    """Create a signed access token.

    Args:
        user_id: The user's UUID, stored as the ``sub`` claim
        role: The user's marketplace role
        email: Optional email claim
        expires_in: Token lifetime

    Returns:
        Encoded JWT
    """
    expires_at = datetime.now(timezone.utc) + expires_in
    claims = {
        'sub': str(user_id),
        'role': UserRole(role).value,
        'exp': int(expires_at.timestamp())
    }
    if email:
        claims['email'] = email
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_access_token(token: str) -> CurrentUser:
    """Decode and validate an access token.

    The role is read from the ``role`` claim, falling back to
    ``app_metadata.role`` as written by hosted identity providers.

    Raises:
        TokenExpiredError: If the token has expired
        InvalidTokenError: If the token is malformed or has bad claims
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            options={'verify_aud': False}
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Session has expired")
    except jwt.JWTError as e:
        raise InvalidTokenError(f"Invalid token: {str(e)}")

    role = payload.get('role')
    if role not in UserRole._value2member_map_:
        role = (payload.get('app_metadata') or {}).get('role', UserRole.BUYER.value)

    try:
        return CurrentUser(id=payload['sub'], role=role, email=payload.get('email'))
    except (KeyError, ValueError) as e:
        raise InvalidTokenError(f"Invalid token claims: {str(e)}")

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=True,  # Return 401 automatically if token is missing
    description="JWT Bearer token required"
)

optional_auth_scheme = HTTPBearer(auto_error=False)

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme)
) -> CurrentUser:
    """FastAPI dependency for getting the authenticated user.

    Raises:
        HTTPException: If authentication fails
    """
    try:
        return decode_access_token(credentials.credentials)
    except TokenExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired"
        )
    except AuthError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e)
        )

async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_auth_scheme)
) -> Optional[CurrentUser]:
    """Like get_current_user, but anonymous callers get None."""
    if credentials is None:
        return None
    return await get_current_user(credentials)

# Export public interface
__all__ = [
    'CurrentUser',
    'AuthError',
    'TokenExpiredError',
    'InvalidTokenError',
    'create_access_token',
    'decode_access_token',
    'get_current_user',
    'get_optional_user',
    'auth_scheme'
]
