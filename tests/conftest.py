"""Shared test fixtures."""

from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.db.sql_storage import SqlStorage
from src.db.storage import InMemoryStorage
from src.models.base import Base
from src.parsers.call_types import GuildConfig
from src.parsers.candidates import GraduationCandidate
from src.parsers.dexscreener.models import DexScreenerPair
from tests.factories import FakeNotifier, FakeWatcher, build_candidate, build_guild, build_pair


@pytest.fixture
def make_pair() -> Callable[..., DexScreenerPair]:
    return build_pair


@pytest.fixture
def make_candidate() -> Callable[..., GraduationCandidate]:
    return build_candidate


@pytest.fixture
def make_guild() -> Callable[..., GuildConfig]:
    return build_guild


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def watcher() -> FakeWatcher:
    return FakeWatcher()


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest_asyncio.fixture(scope="function")
async def sql_storage() -> AsyncGenerator[SqlStorage, None]:
    """SqlStorage over a private in-memory SQLite database.

    StaticPool keeps the single connection alive, otherwise every session
    would see an empty database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield SqlStorage(factory)

    await engine.dispose()
