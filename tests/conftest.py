"""Shared fixtures for Stratus tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import stratus.models  # noqa: F401  (registers tables on SQLModel.metadata)
from stratus import Principal, Stratus, StratusConfig

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine


class FakeClock:
    """Settable clock so expiry can be tested without sleeping."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class MemoryBlobStore:
    """In-memory blob store with per-locator failure injection."""

    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self.removed: list[str] = []
        self.fail_on: set[str] = set()

    async def put(self, locator: str, data: bytes) -> None:
        self.blobs[locator] = data

    async def get(self, locator: str) -> bytes:
        return self.blobs[locator]

    async def remove(self, locator: str) -> None:
        if locator in self.fail_on:
            raise OSError(f"storage rejected removal of {locator}")
        self.blobs.pop(locator, None)
        self.removed.append(locator)


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session on the shared engine."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def config() -> StratusConfig:
    return StratusConfig(public_origin="https://drive.example.com")


@pytest.fixture
def drive(
    async_engine: AsyncEngine,
    blobs: MemoryBlobStore,
    clock: FakeClock,
    config: StratusConfig,
) -> Stratus:
    return Stratus(engine=async_engine, blob_store=blobs, config=config, clock=clock)


@pytest.fixture
def alice() -> Principal:
    return Principal("alice", "alice@example.com")


@pytest.fixture
def bob() -> Principal:
    return Principal("bob", "Bob@Example.com")


@pytest.fixture
def carol() -> Principal:
    return Principal("carol", "carol@example.com")
