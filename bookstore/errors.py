"""
Error kinds raised by the book data-access layer.

Not-found is never an error: lookups return ``None`` (or an empty list).
Database failures are classified so callers can decide whether to retry:

  TransientDatabaseError    network / connection / pool exhaustion, retriable
  ConstraintViolationError  uniqueness or foreign-key violation, not retriable
  DatabaseError             anything else the driver reports, not retriable

Cache backend failures never surface here; ``CacheManager`` logs them and
treats them as misses.
"""
from contextlib import contextmanager

from sqlalchemy import exc as sa_exc


class BookstoreError(Exception):
    """Base error for the book data-access layer."""

    retriable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(BookstoreError):
    """A data-source, cache or table descriptor is malformed."""


class DatabaseError(BookstoreError):
    pass


class TransientDatabaseError(DatabaseError):
    retriable = True


class ConstraintViolationError(DatabaseError):
    pass


# Some drivers (SQLite) report schema and SQL mistakes as OperationalError;
# retrying those cannot help.
_PERMANENT_OPERATIONAL_MARKERS = (
    "no such table",
    "no such column",
    "has no column",
    "syntax error",
)


def _is_permanent(error: sa_exc.DBAPIError) -> bool:
    message = str(error.orig).lower()
    return any(marker in message for marker in _PERMANENT_OPERATIONAL_MARKERS)


def classify(error: Exception) -> DatabaseError:
    """Map a SQLAlchemy or driver exception onto a ``DatabaseError`` kind."""
    if isinstance(error, sa_exc.IntegrityError):
        return ConstraintViolationError(f"constraint violated: {error.orig}")
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return TransientDatabaseError(f"connection lost: {error.orig}")
    if isinstance(error, sa_exc.OperationalError) and _is_permanent(error):
        return DatabaseError(f"database rejected statement: {error.orig}")
    if isinstance(error, (sa_exc.OperationalError, sa_exc.InterfaceError)):
        return TransientDatabaseError(f"database unavailable: {error.orig}")
    if isinstance(error, sa_exc.TimeoutError):
        return TransientDatabaseError(f"connection pool exhausted: {error}")
    if isinstance(error, (OSError, TimeoutError)):
        return TransientDatabaseError(f"database unreachable: {error}")
    return DatabaseError(str(error))


@contextmanager
def translate_errors():
    """
    Re-raise database failures inside the block as ``DatabaseError`` kinds.

    The original exception is kept as ``__cause__``. Cancellation and
    errors that are already classified pass through untouched.
    """
    try:
        yield
    except BookstoreError:
        raise
    except (sa_exc.SQLAlchemyError, OSError, TimeoutError) as exc:
        raise classify(exc) from exc
