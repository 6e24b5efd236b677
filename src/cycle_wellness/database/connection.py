"""Engine and session lifecycle.

PostgreSQL (asyncpg) in production; SQLite (aiosqlite) for local runs and
the CLI against a scratch database.

## Settings

| Variable                | Used for                                 |
|-------------------------|------------------------------------------|
| `DATABASE_URL`          | connection string, `?ssl=require` for TLS |
| `DATABASE_POOL_SIZE`    | pooled connections (PostgreSQL only)     |
| `DATABASE_MAX_OVERFLOW` | extra connections under load             |
| `DATABASE_ECHO`         | log every SQL statement                  |

An in-memory SQLite URL gets a single shared connection, otherwise every
session would see its own empty database.

## Usage

```python
await init_db()
await create_tables()

async with get_db() as session:
    cycle = await get_current_cycle(session, user_id)
```
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from cycle_wellness.config import Settings, get_settings
from cycle_wellness.database.models import Base

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def engine_options(settings: Settings) -> dict[str, Any]:
    """Keyword arguments for `create_async_engine` matching the backend."""
    options: dict[str, Any] = {"echo": settings.database_echo}
    url = settings.database_url

    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
        )
    elif ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
        options.update(
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return options


def _require_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _engine


async def init_db(settings: Settings | None = None) -> None:
    """Create the engine and session factory; call once at startup."""
    global _engine, _session_factory

    settings = settings or get_settings()
    if _engine is not None:
        logger.debug("Database already initialized")
        return

    _engine = create_async_engine(settings.database_url, **engine_options(settings))
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.info(f"Database engine ready ({_engine.dialect.name})")


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database engine disposed")


async def create_tables() -> None:
    """Create missing tables. Schema changes in production go through migrations."""
    async with _require_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Ensured {len(Base.metadata.tables)} tables")


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Session for background jobs and the CLI.

    Rolled back if the block raises, always closed. Nothing is committed
    implicitly.
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    session = _session_factory()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with get_db() as session:
        yield session
