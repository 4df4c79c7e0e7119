from bookstore.book_model import BookModel, new_book_model
from bookstore.config import Settings


class ServiceContext:
    """
    Per-process handle given to request handlers.

    Holds the configuration and the one ``BookModel`` built from it.
    Construction fails immediately on a malformed data source, cache URL
    or table name.

    Args:
        config: Process settings.
        book_model: Optional pre-built model for testing or DI.
    """

    def __init__(self, config: Settings, book_model: BookModel | None = None) -> None:
        self.config = config
        self.book_model: BookModel = book_model or new_book_model(
            config.DATABASE_URL,
            config.REDIS_URL,
            config.BOOK_TABLE,
            config,
        )

    async def close(self) -> None:
        await self.book_model.close()
