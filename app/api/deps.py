"""Dependency injection for API endpoints."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import Settings, get_settings
from app.schemas.auth import GUEST, Caller
from app.services.message_processor import InboundMessageProcessor
from app.services.push import PushBroker
from app.services.storage import ChatRepository, build_repository
from app.utils.jwt import get_caller_from_token

__all__ = [
    "get_repository",
    "get_push_broker",
    "get_message_processor",
    "get_caller",
    "require_console_caller",
]

# Bearer token security scheme
bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_repository() -> ChatRepository:
    """Process-wide chat repository (backend selection is still per call)."""
    return build_repository()


@lru_cache
def get_push_broker() -> PushBroker:
    """Process-wide push broker."""
    return PushBroker(max_queue=get_settings().push_queue_size)


def get_message_processor(
    repo: Annotated[ChatRepository, Depends(get_repository)],
    push: Annotated[PushBroker, Depends(get_push_broker)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> InboundMessageProcessor:
    """Message processor wired to the shared repository and broker."""
    return InboundMessageProcessor(repo, settings=settings, push=push)


# Optional auth - anonymous callers are guest customers
async def get_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Caller:
    """Get the caller from the JWT token, or a guest if there is none.

    Raises 401 if a token is present but invalid or expired.
    """
    if credentials is None:
        return GUEST

    caller = get_caller_from_token(credentials.credentials)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return caller


async def require_console_caller(
    caller: Annotated[Caller, Depends(get_caller)],
) -> Caller:
    """Require a staff or admin caller (the console)."""
    if caller.is_customer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff or admin access required",
        )
    return caller
