"""
Book service: the handler logic behind the bookstore's check and add calls.

Handlers translate between caller-facing identifiers (ISBN) and the
model's primary key. They never talk to the cache or the database
directly, so every read and write keeps the model's cache-aside rules.
"""
from bookstore.context import ServiceContext
from bookstore.schemas import Book, BookCreate, BookUpdate, CheckResult


async def check_book(ctx: ServiceContext, isbn: str) -> CheckResult:
    """Report whether *isbn* is stocked and, if so, its price."""
    book = await ctx.book_model.find_one_by_isbn(isbn)
    if book is None:
        return CheckResult(found=False)
    return CheckResult(found=True, price=book.price)


async def add_book(ctx: ServiceContext, data: BookCreate) -> int:
    """
    Add a new book and return its id.

    A duplicate ISBN propagates as ``ConstraintViolationError``.
    """
    return await ctx.book_model.insert(data)


async def update_price(ctx: ServiceContext, isbn: str, price: int) -> Book | None:
    """
    Set the price of the book identified by *isbn*.

    Returns the updated book, or None when no book has that ISBN.
    """
    book = await ctx.book_model.find_one_by_isbn(isbn)
    if book is None:
        return None
    return await ctx.book_model.update_fields(book.id, BookUpdate(price=price))


async def remove_book(ctx: ServiceContext, isbn: str) -> bool:
    """Delete the book identified by *isbn*; False when it does not exist."""
    book = await ctx.book_model.find_one_by_isbn(isbn)
    if book is None:
        return False
    return await ctx.book_model.delete(book.id)


async def books_by_author(ctx: ServiceContext, author: str) -> list[Book]:
    return await ctx.book_model.find_by_author(author)
