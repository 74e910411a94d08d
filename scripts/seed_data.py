"""Seed data script for development and manual testing.

Creates:
- 1 admin, 2 managers, 2 couriers and 3 clients
- a handful of instruments and accessories
- trade-in conditions (excellent / good / fair / parts)
- an active trade-in catalog entry for the instruments

Environment Variables:
    RESET_DATA: Set to "true" to clear orders and trade-in data before seeding (default: false)
    CREATE_TABLES: Set to "true" to create tables from the models instead of alembic (default: false)

Usage:
    python -m scripts.seed_data

    # Print bearer tokens for every seeded user
    python -m scripts.seed_data tokens
"""

import asyncio
import os
import sys
from decimal import Decimal

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from musicshop.core.database import Base, async_session_maker, engine
from musicshop.core.enums import UserRole
from musicshop.core.security import create_access_token
from musicshop.models import Product, TradeInCatalogEntry, TradeInCondition, User

RESET_DATA = os.getenv("RESET_DATA", "false").lower() == "true"
CREATE_TABLES = os.getenv("CREATE_TABLES", "false").lower() == "true"

USERS = [
    ("Alice Admin", "admin@musicshop.test", UserRole.ADMIN),
    ("Mark Manager", "manager1@musicshop.test", UserRole.MANAGER),
    ("Mia Manager", "manager2@musicshop.test", UserRole.MANAGER),
    ("Carl Courier", "courier1@musicshop.test", UserRole.COURIER),
    ("Cleo Courier", "courier2@musicshop.test", UserRole.COURIER),
    ("Dan Client", "client1@musicshop.test", UserRole.CLIENT),
    ("Eva Client", "client2@musicshop.test", UserRole.CLIENT),
    ("Finn Client", "client3@musicshop.test", UserRole.CLIENT),
]

PRODUCTS = [
    # name, price, trade-in payout cap (None: not accepted)
    ("Stratocaster Electric Guitar", Decimal("1000.00"), Decimal("200.00")),
    ("Dreadnought Acoustic Guitar", Decimal("650.00"), Decimal("150.00")),
    ("Jazz Bass", Decimal("900.00"), Decimal("180.00")),
    ("Tube Combo Amplifier", Decimal("780.00"), Decimal("160.00")),
    ("Guitar Strings Set", Decimal("12.50"), None),
    ("Instrument Cable 3m", Decimal("19.90"), None),
]

CONDITIONS = [
    ("excellent", Decimal("100"), "Like new, no visible wear"),
    ("good", Decimal("75"), "Light wear, fully working"),
    ("fair", Decimal("33"), "Visible wear, minor issues"),
    ("parts", Decimal("10"), "Not working, for parts"),
]


async def reset_order_data(session: AsyncSession) -> None:
    """Clear orders and trade-in configuration."""
    print("Resetting order data...")
    for table in [
        "order_history",
        "order_trade_in_items",
        "order_items",
        "orders",
        "trade_in_catalog",
        "trade_in_conditions",
    ]:
        await session.execute(text(f"DELETE FROM {table}"))
    await session.commit()
    print("  Cleared orders, history and trade-in data")


async def seed_users(session: AsyncSession) -> list[User]:
    users = []
    for full_name, email, role in USERS:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is None:
            user = User(full_name=full_name, email=email, phone="+1555000" + str(len(users)), role=role)
            session.add(user)
            print(f"  Created {role}: {email}")
        users.append(user)
    await session.flush()
    return users


async def seed_products(session: AsyncSession) -> None:
    for name, price, payout in PRODUCTS:
        result = await session.execute(select(Product).where(Product.name == name))
        product = result.scalar_one_or_none()
        if product is None:
            product = Product(name=name, price=price, is_available=True)
            session.add(product)
            await session.flush()
            print(f"  Created product: {name} ({price})")

        if payout is None:
            continue
        result = await session.execute(
            select(TradeInCatalogEntry)
            .where(TradeInCatalogEntry.product_id == product.id)
            .where(TradeInCatalogEntry.is_active.is_(True))
        )
        if result.scalar_one_or_none() is None:
            session.add(
                TradeInCatalogEntry(
                    product_id=product.id,
                    reference_price=price,
                    base_discount_amount=payout,
                    is_active=True,
                )
            )
            print(f"    Trade-in payout cap: {payout}")


async def seed_conditions(session: AsyncSession) -> None:
    for code, percent, label in CONDITIONS:
        if await session.get(TradeInCondition, code) is None:
            session.add(TradeInCondition(code=code, percent=percent, label=label))
            print(f"  Created condition: {code} ({percent}%)")


async def seed() -> None:
    print("=" * 60)
    print("Seeding music shop data...")
    print("=" * 60)

    if CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with async_session_maker() as session:
        if RESET_DATA:
            await reset_order_data(session)
        await seed_users(session)
        await seed_products(session)
        await seed_conditions(session)
        await session.commit()

    await engine.dispose()
    print("\nSeed complete!")


async def print_tokens() -> None:
    """Print a bearer token per seeded user for manual API calls."""
    async with async_session_maker() as session:
        result = await session.execute(select(User).order_by(User.id))
        for user in result.scalars().all():
            token = create_access_token({"sub": str(user.id)})
            print(f"{str(user.role):8} {user.email:28} {token}")
    await engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "tokens":
        asyncio.run(print_tokens())
    else:
        asyncio.run(seed())
