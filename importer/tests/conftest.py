"""Async test fixtures for the record importer using SQLite."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from importer.config import settings
from importer.database import get_db
from importer.dependencies import get_executor, get_sync_target
from importer.models import Base
from importer.services.crm_sync import LocalSyncTarget
from importer.tests.fakes import make_executor


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(engine, monkeypatch):
    """HTTPX async test client against the importer app."""
    from importer.app import app

    monkeypatch.setattr(settings, "sync_call_delay_seconds", 0.0)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_executor] = lambda: make_executor()
    app.dependency_overrides[get_sync_target] = lambda: LocalSyncTarget()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
