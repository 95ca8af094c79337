"""Main API router for v1 endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import get_repository
from app.api.v1 import chat
from app.services.storage import ChatRepository

router = APIRouter()

# Include all sub-routers
router.include_router(chat.router)


@router.get("/health")
async def health_check(
    repo: Annotated[ChatRepository, Depends(get_repository)],
) -> dict[str, str]:
    """Health check endpoint, reports which store currently serves requests."""
    backend = repo.primary.name if repo.primary.is_configured() else repo.fallback.name
    return {"status": "ok", "message": "Support chat API is running", "backend": backend}
