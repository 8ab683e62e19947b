"""pytest fixtures for Pixelift backend tests.

Provides:
- engine: Function-scoped SQLite database (one file per test) with all tables
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
- enhancement_service / blob_store: In-memory collaborator fakes
- make_user / make_photo: Record factories
- test_client: httpx client bound to the FastAPI app
"""

import os
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from fakes import (
    INTERNAL_API_KEY,
    INTERNAL_SERVICE_SECRET,
    JPEG_BYTES,
    SESSION_SECRET,
    FakeEnhancementService,
    InMemoryBlobStore,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import pixelift.models  # noqa: F401  (registers tables on SQLModel.metadata)
from pixelift.models.photo import Photo, PhotoStatus
from pixelift.models.user import User, UserRole
from pixelift.uow import create_uow_factory

# Settings are read from the environment by the app and its dependencies
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SESSION_SECRET"] = SESSION_SECRET
os.environ["INTERNAL_SERVICE_SECRET"] = INTERNAL_SERVICE_SECRET
os.environ["INTERNAL_API_KEY"] = INTERNAL_API_KEY
os.environ["TRIGGER_BACKOFF_SECONDS"] = "0"
os.environ["RECOVERY_WORKER_ENABLED"] = "false"


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Provide a fresh file-backed SQLite database with all tables created.

    A file (not :memory:) lets concurrent sessions see each other's commits.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)


@pytest.fixture
def enhancement_service():
    return FakeEnhancementService()


@pytest.fixture
def blob_store():
    return InMemoryBlobStore()


@pytest.fixture
def make_user(uow_factory):
    """Create and persist a user."""

    async def _make_user(
        credits: int = 1, role: UserRole = UserRole.USER, email: str | None = None
    ) -> User:
        async with await uow_factory() as uow:
            return await uow.users.add(
                User(email=email or f"{uuid4().hex[:8]}@example.com", credits=credits, role=role)
            )

    return _make_user


@pytest.fixture
def make_photo(uow_factory, blob_store):
    """Create and persist a photo whose source image lives in the blob store."""

    async def _make_photo(
        owner: User, status: PhotoStatus = PhotoStatus.PENDING, **fields
    ) -> Photo:
        source_ref = fields.pop("source_ref", None)
        if source_ref is None:
            source_ref = await blob_store.put(JPEG_BYTES, "source.jpg", "image/jpeg")
        photo = Photo(
            owner_id=owner.id,
            source_ref=source_ref,
            status=status,
            content_type="image/jpeg",
            size_bytes=len(JPEG_BYTES),
            **fields,
        )
        async with await uow_factory() as uow:
            return await uow.photos.add(photo)

    return _make_photo


@pytest_asyncio.fixture
async def test_client(session_factory, uow_factory, enhancement_service, blob_store):
    """Provide AsyncClient for testing API endpoints with database access.

    Background tasks (the upload dispatcher) finish before the response is returned.
    """
    from httpx import ASGITransport, AsyncClient

    from pixelift.app import app

    # Inject test resources into app.state (lifespan does not run under ASGITransport)
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.enhancement_service = enhancement_service
    app.state.blob_store = blob_store

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
