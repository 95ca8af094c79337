"""FastAPI application entry point for the support chat service."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.api.v1.router import router as api_v1_router
from app.config import get_settings, load_settings
from app.database import dispose_engines, get_engine
from app.services.errors import ChatError, FallbackIOError, NotFoundError, ValidationError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - startup and shutdown events."""
    # Startup
    current = load_settings()
    logger.info("Starting support chat API...")
    logger.info(f"Environment: {current.app_env}")

    if current.primary_configured:
        logger.info(f"Primary store: {current.async_database_url.split('@')[-1]}")  # Hide credentials
        try:
            async with get_engine(current.async_database_url).connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("Primary store connection successful")
        except Exception as e:
            logger.warning(f"Primary store connection failed, serving from file mirror: {e}")
    else:
        logger.warning(f"Primary store not configured, using file mirror in {current.chat_data_dir}")

    yield

    # Shutdown
    logger.info("Shutting down support chat API...")
    await dispose_engines()


# Create FastAPI app
app = FastAPI(
    title="Support Chat API",
    description="Customer support chat with a primary store and a local file mirror",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
allowed_origins = [
    settings.frontend_url,  # Site frontend
    "http://localhost:3000",  # Local development
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins if not settings.is_development else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": exc.message, "field": exc.field},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"success": False, "error": f"{exc.entity.capitalize()} not found"},
    )


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if isinstance(exc, FallbackIOError):
        logger.error(f"File mirror failure on {request.url.path}: {exc}")
    else:
        logger.error(f"Chat failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error"},
    )


# Include routers
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "Support Chat API",
        "version": "0.1.0",
        "description": "Customer support chat",
    }


@app.get("/health")
async def health() -> dict[str, str]:
    """Global health check."""
    return {"status": "ok"}
