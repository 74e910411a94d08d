"""Reset database to empty state.

Clears all data from:
- order_history
- order_trade_in_items, order_items, orders
- trade_in_catalog, trade_in_conditions
- products
- users

Also clears Redis data (rate limiter windows).

Usage:
    python -m scripts.reset_db
"""

import asyncio

from redis.exceptions import RedisError
from sqlalchemy import text

from musicshop.core.database import async_session_maker, engine
from musicshop.core.redis import close_redis, get_redis

# Children before parents because of foreign keys
TABLES = [
    "order_history",
    "order_trade_in_items",
    "order_items",
    "orders",
    "trade_in_catalog",
    "trade_in_conditions",
    "products",
    "users",
]


async def reset_database():
    """Clear all data from the database."""
    print("=" * 60)
    print("Resetting database to empty state...")
    print("=" * 60)

    async with async_session_maker() as session:
        for table in TABLES:
            result = await session.execute(text(f"DELETE FROM {table}"))
            print(f"  Deleted {result.rowcount} rows from {table}")

        await session.commit()
        print("\nDatabase cleared successfully!")


async def reset_redis():
    """Clear all Redis data."""
    print("\nResetting Redis...")

    try:
        redis = await get_redis()
        await redis.flushdb()
        print("  Redis flushed successfully!")
    except (RedisError, OSError) as e:
        print(f"  Warning: Could not clear Redis: {e}")
        print("  (This is OK if Redis is not running locally)")
    finally:
        await close_redis()


async def main():
    await reset_database()
    await reset_redis()
    await engine.dispose()

    print("\n" + "=" * 60)
    print("Reset complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
