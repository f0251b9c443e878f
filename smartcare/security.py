import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from .config import get_settings
from .schemas import TokenData

security_logger = logging.getLogger("security")

# Tokens are issued by the identity provider; this service only verifies them
bearer_scheme = HTTPBearer(auto_error=False)


# JWT utilities
def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token. ``data`` carries ``sub`` (user id) and ``role``."""
    settings = get_settings()
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    to_encode.update({
        "exp": expire,
        "type": "access",
        "iat": datetime.now(timezone.utc),
        "jti": secrets.token_urlsafe(16),
    })

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """Verify and decode JWT token"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        security_logger.info(f"Rejected token: {e}")
        return None

    if payload.get("type") != token_type:
        return None
    return payload


def user_from_token(token: Optional[str]) -> Optional[TokenData]:
    if not token:
        return None
    payload = verify_token(token)
    if not payload:
        return None
    try:
        return TokenData(user_id=payload.get("sub"), role=payload.get("role"))
    except ValidationError:
        return None


# Dependencies for FastAPI
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenData:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user = user_from_token(credentials.credentials if credentials else None)
    if user is None:
        raise credentials_exception
    return user


def require_role(*allowed_roles: str):
    """Dependency factory for role-based access control"""
    def role_dependency(current_user: TokenData = Depends(get_current_user)) -> TokenData:
        if current_user.role.value not in allowed_roles:
            security_logger.warning(f"User {current_user.user_id} ({current_user.role.value}) denied; requires {allowed_roles}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return current_user

    return role_dependency
