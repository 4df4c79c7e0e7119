"""Lookup benchmark: cold (database) versus warm (cache) reads."""
import asyncio
import argparse
import time
import statistics

from bookstore.config import settings
from bookstore.context import ServiceContext
from bookstore.instrumentation import install_query_counter

LOOKUPS = [
    ("find_one(id)", lambda m, i: m.find_one(i + 1)),
    ("find_one_by_isbn", lambda m, i: m.find_one_by_isbn(f"978-0-{i // 100000:02d}-{i % 100000:06d}-0")),
    ("find_one(missing)", lambda m, i: m.find_one(10_000_000 + i)),
    ("find_by_author", lambda m, i: m.find_by_author("Octavia Butler")),
]


async def benchmark_lookup(model, counter, name, lookup, iterations: int = 50):
    results = {}
    for phase in ("cold", "warm"):
        times = []
        counter.reset()
        for i in range(iterations):
            start = time.perf_counter()
            await lookup(model, i)
            times.append((time.perf_counter() - start) * 1000)
        results[phase] = {
            "p50": statistics.median(times),
            "p95": sorted(times)[int(len(times) * 0.95) - 1],
            "queries": counter.count,
        }
    return name, results


async def main(iterations: int):
    ctx = ServiceContext(settings)
    counter = install_query_counter(ctx.book_model.engine)
    cache_up = await ctx.book_model.cache.ping()
    print(f"Cache available: {cache_up}")
    print(f"{'Lookup':<22} {'phase':<6} {'p50 ms':>8} {'p95 ms':>8} {'queries':>8}")
    print("-" * 56)
    try:
        for name, lookup in LOOKUPS:
            _, results = await benchmark_lookup(ctx.book_model, counter, name, lookup, iterations)
            for phase, r in results.items():
                print(f"{name:<22} {phase:<6} {r['p50']:>8.2f} {r['p95']:>8.2f} {r['queries']:>8}")
        print(f"\nCache stats: {ctx.book_model.cache.stats}")
    finally:
        await ctx.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Benchmark cached book lookups")
    parser.add_argument("--iterations", type=int, default=50)
    args = parser.parse_args()
    asyncio.run(main(args.iterations))
