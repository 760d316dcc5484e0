"""Shared test fixtures for the mod signer dashboard."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from backend.config import Settings
from backend.database import create_engine
from backend.main import create_app
from backend.modio.client import RemoteFile, RemoteMod
from backend.models.base import Base
from backend.models.mod import ModStatus
from backend.services.sync_service import ModSyncService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterator
    from pathlib import Path

logger = logging.getLogger(__name__)

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_ADMIN_EMAIL = "admin@example.com"
TEST_ADMIN_PASSWORD = "admin-password-123"


class FakeCatalog:
    """In-memory stand-in for the mod.io client.

    ``mods`` is what ``list_mods`` returns; ``files`` maps a mod id to its file
    history; ``details`` maps a mod id to what ``get_mod_detail`` returns.
    Setting ``list_error`` makes ``list_mods`` raise it, and ids in
    ``failing_mods`` make ``list_mod_files`` raise.
    """

    def __init__(self) -> None:
        self.mods: list[RemoteMod] = []
        self.files: dict[int, list[RemoteFile]] = {}
        self.details: dict[int, RemoteMod | None] = {}
        self.list_error: Exception | None = None
        self.failing_mods: set[int] = set()
        self.detail_calls: list[int] = []
        self.list_calls = 0

    async def list_mods(self) -> list[RemoteMod]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.mods)

    async def list_mod_files(self, mod_id: int) -> list[RemoteFile]:
        if mod_id in self.failing_mods:
            msg = f"boom while processing mod {mod_id}"
            raise RuntimeError(msg)
        return list(self.files.get(mod_id, []))

    async def get_mod_detail(self, mod_id: int) -> RemoteMod | None:
        self.detail_calls.append(mod_id)
        return self.details.get(mod_id)

    def factory(self):  # noqa: ANN201
        @asynccontextmanager
        async def open_catalog() -> AsyncIterator[FakeCatalog]:
            yield self

        return open_catalog


class BlockingCatalog(FakeCatalog):
    """A catalog whose listing blocks until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def list_mods(self) -> list[RemoteMod]:
        self.entered.set()
        await self.release.wait()
        return await super().list_mods()


def make_file(
    file_id: int,
    date_added: int,
    version: str | None = None,
    *,
    signed: bool = False,
    md5: str | None = None,
    filename: str | None = None,
    metadata_blob: str | None = None,
) -> RemoteFile:
    blob = '{"minisigs": ["untrusted comment: sig\\nRWQ..."]}' if signed else metadata_blob
    return RemoteFile(
        id=file_id,
        date_added=date_added,
        version=version,
        filename=filename,
        filesize=1024,
        md5=md5 if md5 is not None else f"md5-{file_id}",
        metadata_blob=blob,
    )


def make_mod(
    mod_id: int,
    name: str,
    modfile: RemoteFile | None = None,
    status: ModStatus = ModStatus.LIVE,
    date_added: int = 1_700_000_000,
) -> RemoteMod:
    return RemoteMod(
        id=mod_id,
        name=name,
        profile_url=f"https://mod.io/g/game/m/{name.lower().replace(' ', '-')}",
        status=status,
        date_added=date_added,
        modfile=modfile,
    )


@asynccontextmanager
async def create_test_client(
    settings: Settings, catalog: FakeCatalog | None = None
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (DB, admin user,
    sync service) because ASGITransport does not trigger it. The sync service
    talks to ``catalog`` instead of mod.io.
    """
    from backend.services.auth_service import ensure_admin_user

    app = create_app(settings)
    settings.validate_runtime_security()

    engine, session_factory = create_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.settings = settings

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with session_factory() as session:
        await ensure_admin_user(session, settings)

    catalog = catalog or FakeCatalog()
    sync_service = ModSyncService(session_factory, catalog.factory())
    app.state.sync_service = sync_service
    app.state.scheduler = None

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await sync_service.aclose()
    await engine.dispose()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    db_path = tmp_path / "test.db"
    return Settings(
        secret_key=TEST_SECRET_KEY,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        admin_email=TEST_ADMIN_EMAIL,
        admin_password=TEST_ADMIN_PASSWORD,
        admin_nickname="admin",
        modio_api_key="test-api-key",
        sync_enabled=False,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine, _ = create_engine(test_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def sync_service(
    session_factory: async_sessionmaker[AsyncSession], fake_catalog: FakeCatalog
) -> ModSyncService:
    return ModSyncService(session_factory, fake_catalog.factory())
