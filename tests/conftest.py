"""
Shared fixtures: a fresh in-memory SQLite database per test and an
httpx client bound to the FastAPI app.
"""

import os
import sys

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from db.database import Base, get_db
from services import assignment


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def fleet(db):
    """Two hubs, two vehicles in North and one in South, one North rider."""
    north = await assignment.create_hub(db, "North Hub", "NTH", city="Pune")
    south = await assignment.create_hub(db, "South Hub", "STH", city="Pune")
    v1 = await assignment.create_vehicle(db, north.id, "MH12EV0001", model_name="Ather 450X")
    v2 = await assignment.create_vehicle(db, north.id, "MH12EV0002", model_name="Ather 450X")
    v3 = await assignment.create_vehicle(db, south.id, "MH12EV0003", model_name="Ola S1")
    rider = await assignment.create_rider(db, "Asha Patil", "9800000001", hub_id=north.id)
    return {"north": north, "south": south, "v1": v1, "v2": v2, "v3": v3, "rider": rider}
