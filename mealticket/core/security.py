from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from mealticket.core.config import settings

ALGORITHM = "HS256"


def create_access_token(subject: str, role: Optional[str], expires_delta: Optional[timedelta] = None) -> str:
    """Mint a bearer token the way the identity provider does (used by dev tooling and tests)."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {"exp": expire, "sub": str(subject)}
    if role is not None:
        to_encode["role"] = role
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Returns the claim set, or None if the token is invalid/expired."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload
