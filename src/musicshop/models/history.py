"""Append-only order history ledger."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from musicshop.core.database import Base
from musicshop.core.enums import OrderStatus, UserRole
from musicshop.models.base import utcnow
from musicshop.models.order import order_status_type

if TYPE_CHECKING:
    from musicshop.models.user import User


class OrderHistoryEntry(Base):
    """One status or assignment change of an order. Rows are never updated."""

    __tablename__ = "order_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id"),
        nullable=False,
    )
    changed_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
    )
    old_status: Mapped[OrderStatus | None] = mapped_column(
        order_status_type(),
        nullable=True,
    )
    new_status: Mapped[OrderStatus] = mapped_column(
        order_status_type(),
        nullable=False,
    )
    changed_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
    )
    changed_by_role: Mapped[UserRole | None] = mapped_column(
        Enum(
            UserRole,
            name="user_role",
            native_enum=False,
            length=20,
            values_callable=lambda roles: [r.value for r in roles],
        ),
        nullable=True,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    changed_by: Mapped["User | None"] = relationship("User")

    __table_args__ = (
        Index("idx_order_history_order_changed", "order_id", "changed_at"),
    )
