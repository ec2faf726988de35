from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from slotbook.core.config import settings


def create_access_token(subject: str, role: str, venue_id: Optional[str] = None) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    )
    claims = {"sub": subject, "role": role, "exp": expire, "type": "access"}
    if venue_id is not None:
        claims["venue_id"] = venue_id
    return jwt.encode(
        claims,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        return None
