"""
Shared pytest configuration for padelhub tests.

Service tests run against SQLite through aiosqlite: an in-memory database per
test for the common case, and a temporary database file when several
sessions must see each other's commits (concurrency, background sweep).
"""

import os

os.environ.setdefault("ENV", "test")

from datetime import datetime, timedelta  # noqa: E402
from typing import List  # noqa: E402

import pytest_asyncio  # noqa: E402
import pytz  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from padelhub.database.db import Base  # noqa: E402
from padelhub.database.models import Player  # noqa: E402

# Fixed clock shared by service tests
NOW = datetime(2026, 3, 2, 18, 0, tzinfo=pytz.UTC)
TOMORROW = NOW + timedelta(days=1)


@pytest_asyncio.fixture
async def db_session():
    """Create a test database session."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory over a database file, for tests using several sessions."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'padelhub.db'}", echo=False)
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_session_maker

    await engine.dispose()


async def make_players(session: AsyncSession, ratings: List[int], admin: bool = False) -> List[Player]:
    """Create one player per rating, committed."""
    players = []
    for i, rating in enumerate(ratings, start=1):
        player = Player(full_name=f"Player {i}", rating=rating, is_admin=admin)
        session.add(player)
        players.append(player)
    await session.commit()
    return players
