"""Pytest configuration and shared fixtures.

This module provides:
- A throwaway SQLite database per test (aiosqlite), created from the models
- Session and store fixtures for repository tests
- In-memory collaborators for the certificate generator
- FastAPI test clients, with and without the admin token
"""

# Set environment variables BEFORE any imports that trigger Settings validation
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")
os.environ.setdefault("EXPORT_FORMAT", "svg")

from collections.abc import AsyncGenerator, Generator
from datetime import date
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from core.config import clear_settings_cache
from core.database import create_all, create_engine, create_session_maker
from core.wide_event import init_wide_event
from repositories import SqlCertificateRecordStore, SqlTemplateStore
from services.certificates_service import CertificateGenerator
from services.export_service import FileSystemDocumentExporter
from tests.fakes import (
    FakeRegistrationSource,
    InMemoryDocumentExporter,
    InMemoryRecordStore,
    InMemoryTemplateStore,
)

ADMIN_TOKEN = os.environ["ADMIN_API_TOKEN"]
FIXED_TODAY = date(2025, 3, 1)


@pytest.fixture(autouse=True)
def setup_wide_event():
    """Initialize wide_event context for all tests.

    Services use set_wide_event_fields() which requires context initialization.
    In production this is done by middleware; in tests we do it here.
    """
    init_wide_event()
    yield


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None]:
    """Reset settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """File-backed SQLite engine with the schema created from the models.

    A file (not :memory:) so concurrent sessions see the same database.
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'certificates.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(
    test_engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(test_engine)


@pytest_asyncio.fixture
async def db_session(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """A session whose work is rolled back at the end of the test."""
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


# =============================================================================
# Generator collaborators
# =============================================================================


@pytest.fixture
def template_store() -> InMemoryTemplateStore:
    return InMemoryTemplateStore()


@pytest.fixture
def registrations() -> FakeRegistrationSource:
    return FakeRegistrationSource()


@pytest.fixture
def exporter() -> InMemoryDocumentExporter:
    return InMemoryDocumentExporter()


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def generator(
    template_store: InMemoryTemplateStore,
    registrations: FakeRegistrationSource,
    exporter: InMemoryDocumentExporter,
    record_store: InMemoryRecordStore,
) -> CertificateGenerator:
    """Generator over in-memory collaborators, with a fixed issue date."""
    return CertificateGenerator(
        templates=template_store,
        registrations=registrations,
        exporter=exporter,
        records=record_store,
        max_concurrency=3,
        today=lambda: FIXED_TODAY,
    )


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def app(
    test_engine: AsyncEngine,
    session_maker: async_sessionmaker[AsyncSession],
    registrations: FakeRegistrationSource,
    tmp_path: Path,
) -> AsyncGenerator[FastAPI]:
    """FastAPI app wired to the test database and a fake registrations source.

    ASGITransport does not run the lifespan, so the state it would build is
    set here directly.
    """
    from main import app as fastapi_app

    fastapi_app.state.engine = test_engine
    fastapi_app.state.session_maker = session_maker
    fastapi_app.state.template_store = SqlTemplateStore(session_maker)
    fastapi_app.state.certificate_generator = CertificateGenerator(
        templates=SqlTemplateStore(session_maker),
        registrations=registrations,
        exporter=FileSystemDocumentExporter(tmp_path / "documents", fmt="svg"),
        records=SqlCertificateRecordStore(session_maker),
        # SQLite allows one writer at a time
        max_concurrency=1,
        today=lambda: FIXED_TODAY,
    )
    fastapi_app.state.init_done = True
    fastapi_app.state.init_error = None

    yield fastapi_app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client carrying the admin bearer token."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": f"Bearer {ADMIN_TOKEN}"},
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def unauthenticated_client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio backend for anyio (required by httpx)."""
    return "asyncio"
