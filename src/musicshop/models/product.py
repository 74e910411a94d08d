"""Product model; the catalog service owns it, orders only snapshot its price."""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from musicshop.core.database import Base
from musicshop.models.base import TimestampMixin


class Product(Base, TimestampMixin):
    """Catalog product as seen by checkout."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
    )
    is_available: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="chk_product_price_non_negative"),
    )
