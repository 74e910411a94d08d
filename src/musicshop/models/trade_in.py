"""Trade-in configuration: per-product payout caps and condition multipliers."""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from musicshop.core.database import Base
from musicshop.models.base import TimestampMixin

if TYPE_CHECKING:
    from musicshop.models.product import Product


class TradeInCatalogEntry(Base, TimestampMixin):
    """Payout configuration for a product the shop accepts as trade-in."""

    __tablename__ = "trade_in_catalog"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"),
        nullable=False,
    )
    reference_price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )
    # Payout cap in currency units; scaled by condition percent
    base_discount_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2),
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    product: Mapped["Product"] = relationship("Product")

    __table_args__ = (
        CheckConstraint("reference_price >= 0", name="chk_trade_in_reference_price"),
        CheckConstraint(
            "base_discount_amount IS NULL OR base_discount_amount >= 0",
            name="chk_trade_in_base_discount",
        ),
        # At most one active entry per product
        Index(
            "uq_trade_in_catalog_active_product",
            "product_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_trade_in_catalog_product", "product_id"),
    )


class TradeInCondition(Base):
    """Named quality tier; percent may exceed 100 for bonus conditions."""

    __tablename__ = "trade_in_conditions"

    code: Mapped[str] = mapped_column(String(32), primary_key=True)
    percent: Mapped[Decimal] = mapped_column(
        Numeric(6, 2),
        nullable=False,
    )
    label: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        CheckConstraint("percent >= 0 AND percent <= 1000", name="chk_trade_in_condition_percent"),
    )
