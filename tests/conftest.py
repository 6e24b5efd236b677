"""Pytest fixtures for cycle wellness tests.

This module provides test fixtures that ensure:
1. No external API calls are made (OpenAI, Google, Microsoft)
2. Each database test runs against a fresh in-memory SQLite database
3. Isolated test environment with controlled configuration
"""

import os
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Set test environment BEFORE importing application modules
# This ensures no real services are contacted during test collection
os.environ.setdefault("SECRET_KEY", "test-secret-key-at-least-32-characters-long")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")
os.environ.pop("OPENAI_API_KEY", None)

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cycle_wellness.database.models import Base, Event, EventSource, User, UserCycle


# =============================================================================
# Test Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset settings and the token cipher before each test."""
    from cycle_wellness.config import get_settings
    from cycle_wellness.database.encryption import reset_cipher

    get_settings.cache_clear()
    reset_cipher()
    yield
    get_settings.cache_clear()
    reset_cipher()


@pytest_asyncio.fixture
async def db_session():
    """Session on a fresh in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    """A signed-in user without cycle data."""
    account = User(email="anna@example.com", google_id="google-123", name="Anna")
    db_session.add(account)
    await db_session.commit()
    return account


@pytest_asyncio.fixture
async def cycle(db_session: AsyncSession, user: User) -> UserCycle:
    """A 28-day cycle that started on 2024-06-01."""
    row = UserCycle(
        user_id=user.id,
        start_date=date(2024, 6, 1),
        cycle_length=28,
        menstrual_length=5,
    )
    db_session.add(row)
    await db_session.commit()
    return row


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_event(db_session: AsyncSession, user: User):
    """Factory adding an event for the test user."""

    async def _make(
        title: str,
        start: datetime,
        end: datetime,
        source: EventSource = EventSource.MANUAL,
        external_event_id: str | None = None,
    ) -> Event:
        event = Event(
            user_id=user.id,
            title=title,
            start_time=start,
            end_time=end,
            source=source.value,
            external_event_id=external_event_id,
        )
        db_session.add(event)
        await db_session.commit()
        return event

    return _make


# =============================================================================
# External Service Fakes
# =============================================================================


def make_llm(text: str | Exception | None = None, payload=None, configured: bool = True):
    """LLM client double: `complete` returns `text`, `complete_json` returns `payload`.

    Passing an exception makes the corresponding call raise it.
    """
    llm = MagicMock()
    llm.is_configured = configured
    llm.monitor = None
    llm.complete = AsyncMock(
        side_effect=text if isinstance(text, Exception) else None,
        return_value=text,
    )
    llm.complete_json = AsyncMock(
        side_effect=payload if isinstance(payload, Exception) else None,
        return_value=payload,
    )
    return llm


@pytest.fixture
def llm():
    """Unconfigured LLM double; every caller must fall back."""
    from cycle_wellness.ai.client import LLMError

    return make_llm(
        text=LLMError("OpenAI API key not configured"),
        payload=LLMError("OpenAI API key not configured"),
        configured=False,
    )
