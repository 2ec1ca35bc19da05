"""
Shared fixtures: in-memory database, a small hackathon and notifiers.
"""
from typing import AsyncGenerator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hackjudge.orm import Base
from hackjudge.realtime.notifier import EventNotifier
from hackjudge.tests.factories import FailingAdapter, RecordingAdapter, World, build_world

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def world(db_session: AsyncSession) -> World:
    return await build_world(db_session)


@pytest_asyncio.fixture
async def recorder() -> RecordingAdapter:
    return RecordingAdapter()


@pytest_asyncio.fixture
async def notifier(recorder: RecordingAdapter) -> EventNotifier:
    return EventNotifier(recorder)


@pytest_asyncio.fixture
async def failing_notifier() -> EventNotifier:
    return EventNotifier(FailingAdapter())
