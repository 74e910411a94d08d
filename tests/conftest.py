"""Pytest configuration and fixtures for testing."""

import os

# Settings are read at import time; keep the app self-contained in tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from decimal import Decimal
from itertools import count
from types import SimpleNamespace
from typing import AsyncGenerator, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from musicshop.core.database import Base, engine_options, get_db
from musicshop.core.enums import UserRole
from musicshop.core.security import create_access_token
from musicshop.main import app
from musicshop.models import Product, TradeInCatalogEntry, TradeInCondition, User
from musicshop.schemas.order import DeliveryInfo, OrderCreate, OrderItemCreate, TradeInItemCreate

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh schema per test; a file database so that sessions really are separate connections."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}"
    test_engine = create_async_engine(url, **engine_options(url))

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


class Factory:
    """Creates committed rows with sensible defaults."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._seq = count(1)

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def user(
        self,
        role: UserRole = UserRole.CLIENT,
        full_name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> User:
        n = next(self._seq)
        return await self._save(
            User(
                full_name=full_name or f"{role.value.title()} {n}",
                email=email or f"{role.value}{n}@musicshop.test",
                phone=phone or f"+1555{n:04d}",
                role=role,
            )
        )

    async def product(
        self, name: str = "Guitar", price: str = "1000.00", is_available: bool = True
    ) -> Product:
        return await self._save(Product(name=name, price=Decimal(price), is_available=is_available))

    async def condition(self, code: str, percent: str, label: str | None = None) -> TradeInCondition:
        return await self._save(TradeInCondition(code=code, percent=Decimal(percent), label=label))

    async def catalog_entry(
        self,
        product: Product,
        base_discount_amount: str | None = "200.00",
        is_active: bool = True,
    ) -> TradeInCatalogEntry:
        return await self._save(
            TradeInCatalogEntry(
                product_id=product.id,
                reference_price=product.price,
                base_discount_amount=Decimal(base_discount_amount) if base_discount_amount else None,
                is_active=is_active,
            )
        )


@pytest.fixture
async def setup_db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Session for fixtures, kept apart from the session under test.

    A failed unit of work rolls back and expires everything in its session;
    users and products created here stay usable across such failures.
    """
    async with session_maker() as session:
        yield session


@pytest.fixture
def factory(setup_db: AsyncSession) -> Factory:
    return Factory(setup_db)


@pytest.fixture
async def shop(factory: Factory) -> SimpleNamespace:
    """A small shop: one user per role (two managers), two products, three conditions."""
    guitar = await factory.product("Stratocaster", "1000.00")
    amp = await factory.product("Combo Amp", "500.00")
    await factory.condition("excellent", "100", "Like new")
    await factory.condition("good", "75", "Light wear")
    await factory.condition("fair", "33", "Visible wear")
    guitar_entry = await factory.catalog_entry(guitar, "200.00")
    amp_entry = await factory.catalog_entry(amp, "200.00")

    return SimpleNamespace(
        client=await factory.user(UserRole.CLIENT, full_name="Dan Client", email="dan@example.com"),
        other_client=await factory.user(UserRole.CLIENT, full_name="Eva Client"),
        manager=await factory.user(UserRole.MANAGER, full_name="Mark Manager"),
        other_manager=await factory.user(UserRole.MANAGER, full_name="Mia Manager"),
        courier=await factory.user(UserRole.COURIER, full_name="Carl Courier"),
        other_courier=await factory.user(UserRole.COURIER, full_name="Cleo Courier"),
        admin=await factory.user(UserRole.ADMIN, full_name="Alice Admin"),
        guitar=guitar,
        amp=amp,
        guitar_entry=guitar_entry,
        amp_entry=amp_entry,
    )


@pytest.fixture
def order_data() -> Callable[..., OrderCreate]:
    """Build an order payload: ``items`` and ``trade_in`` are (product, quantity[, condition]) tuples."""

    def build(items, trade_in=(), phone="+15550100", address="1 Music Row") -> OrderCreate:
        return OrderCreate(
            items=[OrderItemCreate(product_id=p.id, quantity=q) for p, q in items],
            trade_in_items=[
                TradeInItemCreate(product_id=p.id, quantity=q, condition_code=code)
                for p, q, code in trade_in
            ],
            delivery=DeliveryInfo(phone=phone, address=address, contact_name="Dan"),
        )

    return build


@pytest.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with its database pointed at the test engine."""

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    def build(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}

    return build


# Mock Redis client fixture
@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client whose rate limit script admits every request."""
    redis = AsyncMock()
    script = AsyncMock(return_value=[0, 0])
    redis.register_script = MagicMock(return_value=script)
    redis.script = script
    return redis
