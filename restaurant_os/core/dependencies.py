"""
Authentication dependencies for FastAPI
"""

from dataclasses import dataclass
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import uuid
import structlog

from restaurant_os.core.auth import decode_access_token

logger = structlog.get_logger(__name__)
security = HTTPBearer()

STAFF_ROLES = frozenset({"ADMIN", "KITCHEN", "WAITER"})


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated identity resolved from the bearer token"""

    id: str
    role: str
    restaurant_id: Optional[uuid.UUID] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> CurrentUser:
    """Resolve the current user from the JWT token"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise credentials_exception

    restaurant_id = payload.get("restaurant_id")
    try:
        restaurant_uuid = uuid.UUID(restaurant_id) if restaurant_id else None
    except ValueError:
        raise credentials_exception

    user = CurrentUser(
        id=str(payload["sub"]),
        role=str(payload.get("role") or "CUSTOMER").upper(),
        restaurant_id=restaurant_uuid,
    )
    logger.debug("User authenticated", user_id=user.id, role=user.role)
    return user

