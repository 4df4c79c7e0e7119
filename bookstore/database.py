import logging

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from bookstore.config import Settings
from bookstore.errors import ConfigurationError

logger = logging.getLogger(__name__)


def parse_data_source(data_source: str) -> URL:
    """
    Parse *data_source* into a SQLAlchemy URL.

    A malformed descriptor raises ``ConfigurationError`` immediately so a
    broken deployment fails at startup rather than on the first query.
    """
    try:
        url = make_url(data_source)
    except ArgumentError as exc:
        raise ConfigurationError(f"malformed data source: {exc}") from exc
    return url


def create_engine(data_source: str, settings: Settings) -> AsyncEngine:
    """
    Build the async engine (and its connection pool) for *data_source*.

    Pool sizing and checkout timeout come from *settings*; SQLite uses its
    own single-connection pools, which take no sizing arguments.
    """
    url = parse_data_source(data_source)
    kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if url.get_backend_name() != "sqlite":
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )
    try:
        engine = create_async_engine(url, **kwargs)
    except (ArgumentError, InvalidRequestError, ImportError) as exc:
        raise ConfigurationError(f"cannot create engine for {url.drivername!r}: {exc}") from exc
    logger.info("Database engine created: %s", url.render_as_string(hide_password=True))
    return engine
