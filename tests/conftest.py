"""
Test infrastructure for the book data-access layer.

Strategy
--------
- SQLite in-memory via aiosqlite eliminates the need for a running Postgres
  instance in CI, keeping the suite fast and self-contained.
- StaticPool forces all async tasks to share the same in-memory database
  connection, which is required because SQLite in-memory databases are
  connection-scoped; a new connection would see an empty database.
- A fresh engine and schema are built for every test, giving each test a
  clean isolated state without needing transactions or truncation.
- Redis is replaced by ``FakeRedis``, an async double with the subset of the
  redis-py API the CacheManager uses. It honours expiry, records every call
  and can be switched into failure mode to simulate an outage.
"""
import asyncio
import time

import pytest_asyncio
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from bookstore.book_model import BookModel
from bookstore.cache import CacheManager
from bookstore.config import Settings
from bookstore.context import ServiceContext
from bookstore.instrumentation import QueryCounter, install_query_counter
from bookstore.models import book_table, metadata

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ROW_TTL = 300
NOT_FOUND_TTL = 60


# ---------------------------------------------------------------------------
# Redis double
# ---------------------------------------------------------------------------

class FakeRedis:
    """In-process stand-in for ``redis.asyncio.Redis`` (decode_responses=True)."""

    def __init__(self) -> None:
        self.store: dict[str, tuple[str, float | None]] = {}
        self.ttls: dict[str, int | None] = {}
        self.calls: list[tuple] = []
        self.fail = False
        # When set, DELETE blocks until the event is released.
        self.delete_gate: asyncio.Event | None = None
        self.delete_started = asyncio.Event()

    def _check(self, *call) -> None:
        self.calls.append(call)
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def get(self, name: str) -> str | None:
        self._check("get", name)
        entry = self.store.get(name)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self.store[name]
            return None
        return value

    async def set(self, name: str, value: str, ex: int | None = None) -> bool:
        self._check("set", name)
        self.store[name] = (value, time.monotonic() + ex if ex else None)
        self.ttls[name] = ex
        return True

    async def delete(self, *names: str) -> int:
        self._check("delete", *names)
        self.delete_started.set()
        if self.delete_gate is not None:
            await self.delete_gate.wait()
        removed = 0
        for name in names:
            if self.store.pop(name, None) is not None:
                removed += 1
        return removed

    async def aclose(self) -> None:
        self.calls.append(("aclose",))

    def ops(self, op: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == op]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    """Fresh in-memory database with the book table created."""
    engine_test = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    book_table("book")
    async with engine_test.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine_test
    await engine_test.dispose()


@pytest_asyncio.fixture
async def query_counter(engine: AsyncEngine) -> QueryCounter:
    return install_query_counter(engine)


@pytest_asyncio.fixture
async def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def cache(fake_redis: FakeRedis) -> CacheManager:
    # Zero deviation keeps expiries exact for assertions.
    return CacheManager(fake_redis, ttl=ROW_TTL, not_found_ttl=NOT_FOUND_TTL, expiry_deviation=0)


@pytest_asyncio.fixture
async def book_model(engine: AsyncEngine, cache: CacheManager) -> BookModel:
    return BookModel(engine, cache, book_table("book"))


@pytest_asyncio.fixture
async def commit_log(engine: AsyncEngine, fake_redis: FakeRedis) -> list[tuple]:
    """
    Record database commits into ``fake_redis.calls`` so tests can check the
    order of commits and cache operations.
    """

    @event.listens_for(engine.sync_engine, "commit")
    def _on_commit(conn):
        fake_redis.calls.append(("commit",))

    return fake_redis.calls


@pytest_asyncio.fixture
async def service_context(book_model: BookModel) -> ServiceContext:
    return ServiceContext(Settings(DATABASE_URL=TEST_DATABASE_URL, REDIS_URL=""), book_model=book_model)


@pytest_asyncio.fixture
async def file_engine(tmp_path) -> AsyncEngine:
    """
    File-backed database with its own connection per checkout, for tests that
    need real concurrent transactions.
    """
    engine_file = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'books.db'}")
    async with engine_file.begin() as conn:
        await conn.run_sync(metadata.create_all, tables=[book_table("book")])
    yield engine_file
    await engine_file.dispose()
