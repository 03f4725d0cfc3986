"""
JWT utilities

Tokens are issued by the authentication service; this module only needs to
decode them. create_access_token mirrors the issuer's claim layout and is used
by local tooling and tests.
"""

from datetime import datetime, timedelta
from jose import JWTError, jwt
from typing import Dict, Optional
import uuid

from restaurant_os.core.config import get_settings

ACCESS_TOKEN_TTL = timedelta(hours=24)


def create_access_token(
    subject: str,
    role: str,
    restaurant_id: Optional[uuid.UUID] = None,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create JWT access token with user claims"""
    settings = get_settings()
    expire = datetime.utcnow() + (expires_delta or ACCESS_TOKEN_TTL)

    to_encode = {
        "sub": str(subject),
        "role": role,
        "exp": expire,
        "iat": datetime.utcnow(),
    }
    if restaurant_id is not None:
        to_encode["restaurant_id"] = str(restaurant_id)

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict]:
    """Decode and validate JWT token"""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
