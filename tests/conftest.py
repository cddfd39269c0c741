"""Shared pytest fixtures and configuration."""

from __future__ import annotations

import os

# Set required environment variables before any app imports
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ENV", "dev")

from collections.abc import AsyncGenerator, Callable  # noqa: E402
from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402
from sqlmodel.ext.asyncio.session import AsyncSession  # noqa: E402

# Register every table on the metadata
import app.models  # noqa: F401, E402
from app.core.enums import Game  # noqa: E402
from app.models.gacha_pull import GachaPull  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.pull_store import PullStore  # noqa: E402


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine]:
    """Fresh in-memory database per test, shared by every session of the test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> Callable[[], AsyncSession]:
    def factory() -> AsyncSession:
        return AsyncSession(engine, autoflush=False, expire_on_commit=False)

    return factory


@pytest_asyncio.fixture
async def session(
    session_factory: Callable[[], AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session: AsyncSession) -> PullStore:
    return PullStore(session)


@pytest_asyncio.fixture
async def user(session: AsyncSession) -> User:
    user = User(uid="700000001", username="traveler")
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


@pytest.fixture
def make_pull() -> Callable[..., GachaPull]:
    """Build a GachaPull with sensible defaults, overridable per test."""

    def factory(**overrides: object) -> GachaPull:
        values: dict[str, object] = {
            "user_id": 1,
            "banner_id": "genshin_301",
            "game": Game.GENSHIN,
            "item_name": "black tassel",
            "item_type": "Weapon",
            "rank_type": 3,
            "time": datetime(2024, 1, 1, 12, 0, 0),
            "pity_count": 1,
        }
        values.update(overrides)
        return GachaPull(**values)  # pyright: ignore[reportArgumentType]

    return factory
