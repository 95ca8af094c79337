"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from app.config import Settings
from app.database import dispose_engines, init_primary_schema
from app.schemas.auth import GUEST, Caller, CallerRole
from app.services.message_processor import InboundMessageProcessor
from app.services.push import PushBroker
from app.services.storage import ChatRepository, build_repository


def make_settings(data_dir: Path, database_url: str = "") -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        app_env="development",
        database_url=database_url,
        chat_data_dir=str(data_dir),
        jwt_secret_key="test-secret-key-that-is-long-enough",
    )


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "chat"


@pytest.fixture
def settings(data_dir: Path) -> Settings:
    """Fallback-only settings (no primary store configured)."""
    return make_settings(data_dir)


@pytest.fixture
def fallback_repo(settings: Settings) -> ChatRepository:
    """Repository running on the file mirror alone."""
    return build_repository(lambda: settings)


@pytest.fixture
def primary_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'primary.db'}"


@pytest_asyncio.fixture
async def primary_repo(data_dir: Path, primary_url: str) -> ChatRepository:
    """Repository with a working SQLite primary store."""
    settings = make_settings(data_dir, primary_url)
    await init_primary_schema(primary_url)
    return build_repository(lambda: settings)


@pytest.fixture
def broken_primary_repo(data_dir: Path, tmp_path: Path) -> ChatRepository:
    """Repository whose primary store is configured but cannot be opened."""
    missing = tmp_path / "missing-dir" / "primary.db"
    settings = make_settings(data_dir, f"sqlite+aiosqlite:///{missing}")
    return build_repository(lambda: settings)


@pytest.fixture
def broker() -> PushBroker:
    return PushBroker(max_queue=10)


@pytest.fixture
def processor(fallback_repo: ChatRepository, settings: Settings, broker: PushBroker) -> InboundMessageProcessor:
    return InboundMessageProcessor(fallback_repo, settings=settings, push=broker)


# Callers


@pytest.fixture
def admin() -> Caller:
    return Caller(id="admin_1", name="Admin", role=CallerRole.ADMIN)


@pytest.fixture
def staff() -> Caller:
    return Caller(id="staff_1", name="Nadeesha", role=CallerRole.STAFF)


@pytest.fixture
def staff2() -> Caller:
    return Caller(id="staff_2", name="Ruwan", role=CallerRole.STAFF)


@pytest.fixture
def customer() -> Caller:
    return Caller(id="customer_1", name="Dilani", role=CallerRole.CUSTOMER)


@pytest.fixture
def guest() -> Caller:
    return GUEST


# HTTP


@pytest_asyncio.fixture
async def api_client(
    fallback_repo: ChatRepository, broker: PushBroker, settings: Settings
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client driving the ASGI app against the file mirror."""
    from app.api.deps import get_push_broker, get_repository
    from app.config import get_settings
    from app.main import app

    app.dependency_overrides[get_repository] = lambda: fallback_repo
    app.dependency_overrides[get_push_broker] = lambda: broker
    app.dependency_overrides[get_settings] = lambda: settings

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(autouse=True)
async def _dispose_engines() -> AsyncGenerator[None, None]:
    """Engines are cached per URL; drop them so no connection outlives its event loop."""
    yield
    await dispose_engines()
