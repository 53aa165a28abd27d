"""JWT authentication and team-role helpers."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from taskdesk.core.config import settings
from taskdesk.core.exceptions import unauthorized

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)

ROLE_LEVELS = {
    "viewer": 20,
    "developer": 40,
    "admin": 80,
}


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as handed over by the identity provider."""

    user_id: str
    display_name: str
    email: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.email or "Unknown"


def role_allows(role: str, min_role: str) -> bool:
    """Return True when ``role`` is at least as strong as ``min_role``."""
    return ROLE_LEVELS.get(role, 0) >= ROLE_LEVELS.get(min_role, 0)


def create_access_token(
    user_id: str,
    name: str,
    email: str = "",
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token carrying the caller's identity claims."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode = {"sub": user_id, "name": name, "email": email, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Principal:
    """Extract the caller identity from the JWT Bearer token."""
    if credentials is None:
        raise unauthorized()
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise unauthorized("Invalid token payload")
    return Principal(
        user_id=str(user_id),
        display_name=payload.get("name") or "",
        email=payload.get("email") or "",
    )
