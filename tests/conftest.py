"""
Shared fixtures for the escrow test suites

Every test gets a fresh in-memory SQLite database (aiosqlite) with the full
schema created from the models. API tests run the real FastAPI app through
httpx with get_db pointed at that database.
"""
import os

# Must be set before app.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import logging
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.models import UserFlag, UserRole
from app.services.wallet_ledger import WalletLedger

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


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


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fund(db):
    """Credit a wallet and commit"""
    async def _fund(user_id: str, amount):
        wallet = await WalletLedger(db).credit(user_id, Decimal(str(amount)), reason="deposit", reference="test")
        await db.commit()
        return wallet
    return _fund


@pytest.fixture
def suspend(db):
    async def _suspend(user_id: str, reason: str = "fraud review"):
        db.add(UserFlag(user_id=user_id, is_suspended=True, reason=reason))
        await db.commit()
    return _suspend


@pytest.fixture
def make_admin(db):
    async def _make_admin(user_id: str):
        db.add(UserRole(user_id=user_id, role="admin"))
        await db.commit()
    return _make_admin


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
