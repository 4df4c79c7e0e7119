"""Database seeder for book lookup benchmarking."""
import asyncio
import argparse
import random
import time

from bookstore.config import settings
from bookstore.context import ServiceContext
from bookstore.models import metadata
from bookstore.schemas import BookCreate

AUTHORS = ["Ursula K. Le Guin", "Octavia Butler", "N. K. Jemisin", "Ted Chiang",
           "Iain M. Banks", "Ann Leckie", "Frank Herbert", "Stanislaw Lem",
           "Samuel R. Delany", "Becky Chambers"]

WORDS = ["City", "Stars", "Left", "Hand", "Darkness", "Fifth", "Season", "Ancillary",
         "Justice", "Player", "Games", "Solaris", "Dune", "Kindred", "Story", "Life"]


def _isbn(i: int) -> str:
    return f"978-0-{i // 100000:02d}-{i % 100000:06d}-0"


async def seed(small: bool = False, reset: bool = False):
    num_books = 200 if small else 5000

    print(f"Seeding: {num_books} books into table {settings.BOOK_TABLE!r}")
    start = time.perf_counter()

    ctx = ServiceContext(settings)
    model = ctx.book_model
    try:
        async with model.engine.begin() as conn:
            if reset:
                await conn.run_sync(metadata.drop_all, tables=[model.table])
            await conn.run_sync(metadata.create_all, tables=[model.table])

        # Inserts go through the model so cached not-found markers are cleared.
        for i in range(num_books):
            await model.insert(
                BookCreate(
                    isbn=_isbn(i),
                    title=" ".join(random.sample(WORDS, 3)),
                    author=random.choice(AUTHORS),
                    price=random.randint(499, 4999),
                )
            )
            if (i + 1) % 500 == 0:
                print(f"  Inserted {i + 1} books")
    finally:
        await ctx.close()

    elapsed = time.perf_counter() - start
    print(f"Done in {elapsed:.1f}s")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the book table")
    parser.add_argument("--small", action="store_true", help="Seed 200 books instead of 5000")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate the table first")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, reset=args.reset))
