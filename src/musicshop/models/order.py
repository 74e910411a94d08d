"""Order model and its frozen line snapshots."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from musicshop.core.database import Base
from musicshop.core.enums import OrderStatus
from musicshop.models.base import TimestampMixin

if TYPE_CHECKING:
    from musicshop.models.product import Product
    from musicshop.models.user import User


def order_status_type() -> Enum:
    return Enum(
        OrderStatus,
        name="order_status",
        native_enum=False,
        length=20,
        values_callable=lambda statuses: [s.value for s in statuses],
    )


class Order(Base, TimestampMixin):
    """Client order moving through the fulfillment state machine."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status: Mapped[OrderStatus] = mapped_column(
        order_status_type(),
        nullable=False,
        default=OrderStatus.NEW,
    )
    client_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )
    manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    courier_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )

    # Delivery
    contact_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    delivery_phone: Mapped[str] = mapped_column(String(40), nullable=False)
    delivery_address: Mapped[str] = mapped_column(String(500), nullable=False)
    comment_client: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment_internal: Mapped[str | None] = mapped_column(Text, nullable=True)
    canceled_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Totals, computed once at creation
    total_items: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_discount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Transition timestamps
    manager_taken_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ready_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    courier_taken_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    client: Mapped["User"] = relationship("User", foreign_keys=[client_id])
    manager: Mapped["User | None"] = relationship("User", foreign_keys=[manager_id])
    courier: Mapped["User | None"] = relationship("User", foreign_keys=[courier_id])
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
    )
    trade_in_items: Mapped[List["OrderTradeInItem"]] = relationship(
        "OrderTradeInItem",
        back_populates="order",
        order_by="OrderTradeInItem.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("total_discount >= 0", name="chk_order_discount_non_negative"),
        CheckConstraint("total_discount <= total_items", name="chk_order_discount_within_items"),
        Index("idx_orders_status_created", "status", "created_at"),
        Index("idx_orders_client_created", "client_id", "created_at"),
        Index("idx_orders_manager", "manager_id"),
        Index("idx_orders_courier", "courier_id"),
    )


class OrderItem(Base):
    """Purchased product line with the price frozen at order time."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product: Mapped["Product"] = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_order_item_quantity_positive"),
    )


class OrderTradeInItem(Base):
    """Traded-in product line with the payout frozen at order time."""

    __tablename__ = "order_trade_in_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id"),
        nullable=False,
    )
    condition_code: Mapped[str] = mapped_column(String(32), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    percent: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False)
    unit_discount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    line_discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="trade_in_items")
    product: Mapped["Product"] = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_trade_in_item_quantity_positive"),
    )
