"""JWT utilities for caller identity.

Tokens are issued by the site's identity provider with a shared secret; the
chat subsystem only decodes them.
"""

from datetime import datetime, timedelta, timezone

import jwt
from pydantic import BaseModel

from app.config import get_settings
from app.schemas.auth import Caller, CallerRole


class TokenPayload(BaseModel):
    """JWT token payload."""

    sub: str  # Subject - user id
    name: str
    role: CallerRole
    exp: datetime  # Expiration time
    iat: datetime  # Issued at


def create_access_token(user_id: str, name: str, role: CallerRole) -> str:
    """Create a JWT access token for a user (used by the identity provider and tests)."""
    settings = get_settings()

    now = datetime.now(timezone.utc)
    expires = now + timedelta(minutes=settings.jwt_access_token_expire_minutes)

    payload = {
        "sub": user_id,
        "name": name,
        "role": CallerRole(role).value,
        "exp": expires,
        "iat": now,
    }

    token = jwt.encode(
        payload,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return token


def decode_access_token(token: str) -> TokenPayload | None:
    """Decode and validate a JWT access token.

    Returns TokenPayload if valid, None if invalid or expired.
    """
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return TokenPayload(
            sub=payload["sub"],
            name=payload.get("name", ""),
            role=payload["role"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        )
    except jwt.ExpiredSignatureError:
        return None
    except (jwt.InvalidTokenError, KeyError, ValueError):
        return None


def get_caller_from_token(token: str) -> Caller | None:
    """Extract the caller identity from a JWT token.

    Returns Caller if valid, None if invalid or expired.
    """
    payload = decode_access_token(token)
    if payload is None:
        return None
    return Caller(id=payload.sub, name=payload.name or payload.sub, role=payload.role)
