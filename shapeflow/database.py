from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from shapeflow.config import Settings

# Base class for all models
Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    SQLite (aiosqlite) is the default for local development; point
    DATABASE_URL at postgresql+asyncpg:// for production.
    """
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=not settings.database_url.startswith("sqlite"),
    )
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    """
    Session factory shared by the stores.

    expire_on_commit=False keeps returned rows readable after the
    short-lived session that loaded them has closed.
    """
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_db(engine: AsyncEngine) -> None:
    """
    Initialize database schema.
    Creates all tables defined in models.
    Call this on application startup.
    """
    # Models must be imported so their tables are registered on Base.metadata
    from shapeflow import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
