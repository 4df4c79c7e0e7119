"""
Book model: cache-aside data access for the book table.

Design notes
------------
- Reads go through ``CacheManager.take``: Redis first, database on a miss,
  and the result (or the not-found placeholder) is written back.
- The unique ``isbn`` lookup caches only the primary key it maps to; the
  row itself is always read through the primary-key entry, so a change to
  a non-key field invalidates a single entry.
- ``author`` is not unique: its entry holds every matching row, ordered by
  primary key.
- Writes never populate the cache. Each write runs in one transaction that
  first reads the current row, so the old secondary values are known, and
  the affected keys are deleted only after the commit. Deleting before the
  commit would let a concurrent reader cache the pre-write row again. A
  write cancelled or cut off while committing still deletes the keys it
  knows about, since its commit may have landed.
- The model holds no per-request state; one instance serves every concurrent
  caller.
"""
import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from bookstore.cache import CacheManager
from bookstore.config import Settings, settings as default_settings
from bookstore.database import create_engine
from bookstore.errors import ConfigurationError, ConstraintViolationError, translate_errors
from bookstore.keys import CacheKey
from bookstore.models import SECONDARY_FIELDS, book_table
from bookstore.schemas import Book, BookCreate, BookUpdate

logger = logging.getLogger(__name__)

_MUTABLE_FIELDS = {"isbn", "title", "author", "price"}


class BookModel:
    def __init__(self, engine: AsyncEngine, cache: CacheManager, table: Table) -> None:
        self._engine = engine
        self._cache = cache
        self._table = table
        # Invalidations still running after their caller was cancelled.
        self._pending: set[asyncio.Task] = set()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def table(self) -> Table:
        return self._table

    @property
    def cache(self) -> CacheManager:
        return self._cache

    # ------------------------------------------------------------------
    # Key helpers
    # ------------------------------------------------------------------

    def _primary_key(self, pk: int) -> CacheKey:
        return CacheKey.primary(self._table.name, pk)

    def _secondary_key(self, field: str, value: Any) -> CacheKey:
        return CacheKey.secondary(self._table.name, field, value)

    def _keys_for(self, row: Mapping[str, Any]) -> list[CacheKey]:
        """
        Every cache key whose content depends on *row*.

        A row without an ``id`` (an insert that never got its key back)
        yields only the secondary keys.
        """
        keys = [self._primary_key(row["id"])] if row.get("id") is not None else []
        keys.extend(self._secondary_key(field, row[field]) for field in SECONDARY_FIELDS)
        return keys

    async def _invalidate(self, *keys: CacheKey) -> None:
        # Finish the delete even if the caller is cancelled meanwhile.
        task = asyncio.ensure_future(self._cache.delete(*keys))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        await asyncio.shield(task)

    async def _write(self, statements, affected: dict[str, Any]) -> Any:
        """
        Run *statements* in one transaction, then invalidate *affected*.

        *statements* is an async callable taking the connection; it may add
        to *affected* (old row, new values, assigned key) as they become
        known. If the call fails in a way that can hide a landed commit
        (cancellation or a lost connection while committing) the keys known
        so far are still invalidated before the error propagates. A rejected
        statement commits nothing and leaves the cache alone.
        """
        try:
            with translate_errors():
                async with self._engine.begin() as conn:
                    result = await statements(conn)
        except ConstraintViolationError:
            raise
        except BaseException:
            if affected:
                await self._invalidate(*self._affected_keys(affected))
            raise
        if affected:
            await self._invalidate(*self._affected_keys(affected))
        return result

    def _affected_keys(self, affected: dict[str, Any]) -> list[CacheKey]:
        keys: list[CacheKey] = []
        for row in affected.values():
            keys.extend(self._keys_for(row))
        return keys

    # ------------------------------------------------------------------
    # SQL helpers
    # ------------------------------------------------------------------

    async def _select_one(self, conn: AsyncConnection, pk: int, lock: bool = False) -> dict | None:
        q = select(self._table).where(self._table.c.id == pk)
        if lock:
            q = q.with_for_update()
        row = (await conn.execute(q)).mappings().one_or_none()
        return None if row is None else Book.model_validate(dict(row)).model_dump(mode="json")

    async def _query_row(self, pk: int) -> dict | None:
        with translate_errors():
            async with self._engine.connect() as conn:
                return await self._select_one(conn, pk)

    async def _query_pk_by_isbn(self, isbn: str) -> int | None:
        q = select(self._table.c.id).where(self._table.c.isbn == isbn)
        with translate_errors():
            async with self._engine.connect() as conn:
                return (await conn.execute(q)).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_one(self, pk: int) -> Book | None:
        """Return the book with primary key *pk*, or None."""
        data = await self._cache.take(self._primary_key(pk), lambda: self._query_row(pk))
        return None if data is None else Book.model_validate(data)

    async def find_one_by_isbn(self, isbn: str) -> Book | None:
        """
        Return the book whose ISBN is *isbn*, or None.

        The ISBN entry is an index onto the primary-key entry. An index that
        points at a row whose ISBN has since changed is dropped and the
        lookup is answered from the database.
        """
        key = self._secondary_key("isbn", isbn)
        pk = await self._cache.take(key, lambda: self._query_pk_by_isbn(isbn))
        if pk is None:
            return None

        book = await self.find_one(pk)
        if book is not None and book.isbn == isbn:
            return book

        logger.debug("Stale index entry %s -> %s", key, pk)
        await self._cache.delete(key)
        pk = await self._query_pk_by_isbn(isbn)
        if pk is None:
            return None
        data = await self._query_row(pk)
        return None if data is None else Book.model_validate(data)

    async def find_by_author(self, author: str) -> list[Book]:
        """Return every book by *author*, ordered by primary key."""

        async def query() -> list[dict] | None:
            q = (
                select(self._table)
                .where(self._table.c.author == author)
                .order_by(self._table.c.id)
            )
            with translate_errors():
                async with self._engine.connect() as conn:
                    rows = (await conn.execute(q)).mappings().all()
            # An empty result is cached as not-found, with the short expiry.
            return [Book.model_validate(dict(r)).model_dump(mode="json") for r in rows] or None

        data = await self._cache.take(self._secondary_key("author", author), query)
        return [Book.model_validate(item) for item in data or []]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, data: BookCreate) -> int:
        """
        Insert a new book and return its primary key.

        Raises ``ConstraintViolationError`` when the ISBN is already taken.
        """
        values = data.model_dump(include=_MUTABLE_FIELDS)
        # Drops not-found placeholders cached for the new ISBN or author.
        affected: dict[str, dict] = {"new": dict(values)}

        async def statements(conn: AsyncConnection) -> int:
            result = await conn.execute(insert(self._table).values(**values))
            pk = result.inserted_primary_key[0]
            affected["new"]["id"] = pk
            return pk

        pk = await self._write(statements, affected)
        logger.debug("Inserted %s id=%s", self._table.name, pk)
        return pk

    async def _apply_update(self, pk: int, values: dict) -> tuple[dict, dict] | None:
        """
        Write *values* to row *pk* and invalidate what changed.

        Returns the (old, new) row pair, or None when the row is missing.
        """
        affected: dict[str, dict] = {}

        async def statements(conn: AsyncConnection) -> tuple[dict, dict] | None:
            old = await self._select_one(conn, pk, lock=True)
            if old is None:
                return None
            affected["old"] = old
            affected["new"] = {**old, **values}
            await conn.execute(
                update(self._table).where(self._table.c.id == pk).values(**values)
            )
            new = await self._select_one(conn, pk)
            affected["new"] = new
            return old, new

        return await self._write(statements, affected)

    async def update(self, book: Book) -> bool:
        """
        Overwrite every mutable field of the row ``book.id``.

        Returns False when no such row exists.
        """
        values = book.model_dump(include=_MUTABLE_FIELDS)
        return await self._apply_update(book.id, values) is not None

    async def update_fields(self, pk: int, changes: BookUpdate) -> Book | None:
        """
        Apply only the fields explicitly set in *changes* to row *pk*.

        Returns the updated book, or None when no such row exists.
        """
        values = changes.model_dump(exclude_unset=True, exclude_none=True)
        if not values:
            return await self.find_one(pk)
        result = await self._apply_update(pk, values)
        if result is None:
            return None
        return Book.model_validate(result[1])

    async def delete(self, pk: int) -> bool:
        """
        Delete row *pk*.

        Returns True on success, False when the row does not exist.
        """
        affected: dict[str, dict] = {}

        async def statements(conn: AsyncConnection) -> bool:
            old = await self._select_one(conn, pk, lock=True)
            if old is None:
                return False
            affected["old"] = old
            await conn.execute(delete(self._table).where(self._table.c.id == pk))
            return True

        deleted = await self._write(statements, affected)
        if deleted:
            logger.debug("Deleted %s id=%s", self._table.name, pk)
        return deleted

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Release the connection pool and the cache client."""
        await self._cache.close()
        await self._engine.dispose()


def new_book_model(
    data_source: str,
    cache_url: str | None,
    table: str,
    settings: Settings | None = None,
) -> BookModel:
    """
    Build a ready-to-use ``BookModel``.

    *cache_url* may be empty to run without a cache. Malformed descriptors
    raise ``ConfigurationError`` here rather than on first use.
    """
    settings = settings or default_settings
    if not table or not table.replace("_", "").isalnum():
        raise ConfigurationError(f"invalid table name: {table!r}")
    engine = create_engine(data_source, settings)
    cache = CacheManager.from_url(cache_url, settings) if cache_url else CacheManager(None)
    return BookModel(engine, cache, book_table(table))
