from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine


class QueryCounter:
    """Running total of SQL statements executed on one engine."""

    def __init__(self) -> None:
        self.count = 0

    def reset(self) -> None:
        self.count = 0


def install_query_counter(engine: AsyncEngine) -> QueryCounter:
    """
    Register a ``before_cursor_execute`` event listener on *engine* and
    return the ``QueryCounter`` it increments for every SQL statement.

    Must be called once per engine; a second call installs a second,
    independent counter.
    """
    counter = QueryCounter()

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        counter.count += 1

    return counter
