"""
Identity token handling.

The marketplace trusts an upstream identity provider; the core only needs the
caller's uid, carried as the `sub` claim of an HS256 JWT.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from jose import JWTError, jwt
from pydantic import BaseModel

from ecomarket.core.config import Settings

logger = structlog.get_logger()


class TokenPayload(BaseModel):
    sub: str
    exp: Optional[int] = None
    type: str = "access"


def create_access_token(
    uid: str,
    settings: Settings,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for uid."""
    now = datetime.now(timezone.utc)

    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_access_token_expire_minutes)

    payload = {
        "sub": uid,
        "exp": expire,
        "iat": now,
        "type": "access",
    }

    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> Optional[TokenPayload]:
    """
    Decode and validate a JWT access token.

    Validates:
    - Token signature
    - Token expiration
    - Token type (must be "access")
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        token_data = TokenPayload(**payload)

        if token_data.type != "access":
            logger.warning("Invalid token type", token_type=token_data.type)
            return None
        if not token_data.sub:
            return None

        return token_data
    except JWTError as e:
        logger.warning("JWT decode error", error=str(e))
        return None
