"""Trade-in catalog administration and discount quoting."""

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from musicshop.core.config import settings
from musicshop.core.database import unit_of_work
from musicshop.core.enums import UserRole
from musicshop.core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from musicshop.models.product import Product
from musicshop.models.trade_in import TradeInCatalogEntry, TradeInCondition
from musicshop.models.user import User
from musicshop.schemas.order import TradeInItemCreate
from musicshop.schemas.trade_in import (
    TradeInCatalogCreate,
    TradeInQuoteLine,
    TradeInQuoteRequest,
    TradeInQuoteResponse,
)
from musicshop.services.pricing import (
    ZERO,
    DiscountLine,
    cap_discount,
    compute_line_discount,
    compute_order_discount,
    compute_unit_discount,
    round_money,
    to_finite_decimal,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricedTradeInLine:
    """Trade-in line with the payout resolved from the current configuration."""

    product_id: int
    condition_code: str
    quantity: int
    base_amount: Decimal
    percent: Decimal
    unit_discount: Decimal
    line_discount: Decimal


class TradeInService:
    """Service class for trade-in catalog and pricing operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active_catalog(self) -> list[TradeInCatalogEntry]:
        """Get active catalog entries, one per product at most."""
        result = await self.db.execute(
            select(TradeInCatalogEntry)
            .where(TradeInCatalogEntry.is_active.is_(True))
            .order_by(TradeInCatalogEntry.product_id.asc())
        )
        return list(result.scalars().all())

    async def list_conditions(self) -> list[TradeInCondition]:
        """Get all condition tiers, best first."""
        result = await self.db.execute(
            select(TradeInCondition).order_by(
                TradeInCondition.percent.desc(), TradeInCondition.code.asc()
            )
        )
        return list(result.scalars().all())

    async def active_entries(self, product_ids: Iterable[int]) -> dict[int, TradeInCatalogEntry]:
        """Map product ID to its active catalog entry; products without one are absent."""
        ids = set(product_ids)
        if not ids:
            return {}
        result = await self.db.execute(
            select(TradeInCatalogEntry)
            .where(TradeInCatalogEntry.product_id.in_(ids))
            .where(TradeInCatalogEntry.is_active.is_(True))
        )
        return {entry.product_id: entry for entry in result.scalars().all()}

    async def conditions_by_code(self, codes: Iterable[str]) -> dict[str, TradeInCondition]:
        """Load conditions by code.

        Raises:
            NotFoundError: Any of the codes is unknown
        """
        wanted = set(codes)
        if not wanted:
            return {}
        result = await self.db.execute(
            select(TradeInCondition).where(TradeInCondition.code.in_(wanted))
        )
        found = {condition.code: condition for condition in result.scalars().all()}
        missing = sorted(wanted - found.keys())
        if missing:
            raise NotFoundError(f"Unknown trade-in condition: {', '.join(missing)}")
        return found

    async def price_lines(self, lines: list[TradeInItemCreate]) -> list[PricedTradeInLine]:
        """Resolve payout of each trade-in line against the active configuration.

        A product without an active catalog entry, or with no payout cap set,
        prices at 0 rather than failing.

        Args:
            lines: Requested trade-in lines

        Returns:
            Priced lines in request order

        Raises:
            InvalidInputError: Missing condition code or bad quantity
            NotFoundError: Unknown condition code
        """
        codes = []
        for line in lines:
            code = (line.condition_code or "").strip()
            if not code:
                raise InvalidInputError("Trade-in condition is required")
            codes.append(code)

        conditions = await self.conditions_by_code(codes)
        entries = await self.active_entries(line.product_id for line in lines)

        priced = []
        for line, code in zip(lines, codes):
            entry = entries.get(line.product_id)
            condition = conditions[code]
            unit_discount = compute_unit_discount(entry, condition)
            base_amount = to_finite_decimal(entry.base_discount_amount) if entry else None
            priced.append(
                PricedTradeInLine(
                    product_id=line.product_id,
                    condition_code=code,
                    quantity=line.quantity,
                    base_amount=base_amount if base_amount is not None else ZERO,
                    percent=condition.percent,
                    unit_discount=unit_discount,
                    line_discount=compute_line_discount(unit_discount, line.quantity),
                )
            )
        return priced

    async def quote(self, request: TradeInQuoteRequest) -> TradeInQuoteResponse:
        """Preview the discount a cart would get, capped like checkout when a total is given."""
        priced = await self.price_lines(request.items)
        raw_discount = compute_order_discount(
            DiscountLine(unit_discount=line.unit_discount, quantity=line.quantity)
            for line in priced
        )

        cap = None
        discount = raw_discount
        if request.items_total is not None:
            ratio = settings.TRADE_IN_MAX_DISCOUNT_RATIO
            cap = round_money(request.items_total * min(max(ratio, ZERO), Decimal("1")))
            discount = cap_discount(raw_discount, request.items_total, ratio)

        return TradeInQuoteResponse(
            lines=[TradeInQuoteLine(**asdict(line)) for line in priced],
            raw_discount=raw_discount,
            cap=cap,
            discount=discount,
        )

    async def create_entry(self, data: TradeInCatalogCreate, actor: User) -> TradeInCatalogEntry:
        """Add a catalog entry, optionally making it the product's active one.

        Args:
            data: Entry fields and activation flag
            actor: Admin user

        Returns:
            Created entry
        """
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Admin privileges required")

        async with unit_of_work(self.db):
            product = await self.db.get(Product, data.product_id)
            if product is None:
                raise NotFoundError(f"Product {data.product_id} not found")

            entry = TradeInCatalogEntry(
                product_id=data.product_id,
                reference_price=data.reference_price,
                base_discount_amount=data.base_discount_amount,
                is_active=False,
            )
            self.db.add(entry)
            await self.db.flush()

            if data.activate:
                await self._activate(entry.id, entry.product_id)

        await self.db.refresh(entry)
        logger.info(f"Trade-in entry {entry.id} created for product {entry.product_id}")
        return entry

    async def activate(self, entry_id: int, actor: User) -> TradeInCatalogEntry:
        """Make an entry the only active one for its product."""
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Admin privileges required")

        async with unit_of_work(self.db):
            result = await self.db.execute(
                select(TradeInCatalogEntry.product_id).where(TradeInCatalogEntry.id == entry_id)
            )
            product_id = result.scalar_one_or_none()
            if product_id is None:
                raise NotFoundError(f"Trade-in entry {entry_id} not found")
            await self._activate(entry_id, product_id)

        entry = await self.db.get(TradeInCatalogEntry, entry_id, populate_existing=True)
        logger.info(f"Trade-in entry {entry_id} activated for product {product_id}")
        return entry

    async def _activate(self, entry_id: int, product_id: int) -> None:
        # Deactivate first so the partial unique index never sees two active rows
        await self.db.execute(
            update(TradeInCatalogEntry)
            .where(TradeInCatalogEntry.product_id == product_id)
            .where(TradeInCatalogEntry.is_active.is_(True))
            .where(TradeInCatalogEntry.id != entry_id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(TradeInCatalogEntry)
            .where(TradeInCatalogEntry.id == entry_id)
            .values(is_active=True)
            .execution_options(synchronize_session=False)
        )
