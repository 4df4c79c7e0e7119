from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    func,
)

# Declared once here so tests and scripts can create the schema; in
# production the table already exists and these definitions only have to
# match it.
metadata = MetaData()

# Secondary lookup fields; each has its own cache key namespace.
SECONDARY_FIELDS: tuple[str, ...] = ("isbn", "author")


def book_table(name: str = "book", meta: MetaData | None = None) -> Table:
    """
    Return the ``Table`` describing the book schema under *name*.

    Repeated calls with the same *name* and metadata return the same
    ``Table`` object.
    """
    meta = metadata if meta is None else meta
    if name in meta.tables:
        return meta.tables[name]
    return Table(
        name,
        meta,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("isbn", String(32), nullable=False, unique=True),
        Column("title", String(300), nullable=False),
        Column("author", String(150), nullable=False),
        Column("price", Integer, nullable=False, default=0),
        Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
        Column("updated_at", DateTime(timezone=True), onupdate=func.now(), nullable=True),
        # Author listing (non-unique lookup)
        Index(f"ix_{name}_author", "author"),
    )
