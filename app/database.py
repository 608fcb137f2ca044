"""Database engine, session factory and declarative base"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, declarative_base

from app.config import settings
from app.services.events import dispatch_pending_events, discard_pending_events


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


# Match events are queued on the session and only published once the
# surrounding transaction has actually committed.
@event.listens_for(Session, "after_commit")
def _publish_match_events(session):
    dispatch_pending_events(session)


@event.listens_for(Session, "after_rollback")
def _drop_match_events(session):
    discard_pending_events(session)


async def get_db():
    """FastAPI dependency - yields a session per request"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create tables directly (development only, production uses Alembic)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    await engine.dispose()
