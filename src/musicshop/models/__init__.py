"""SQLAlchemy ORM models."""

from musicshop.models.base import TimestampMixin
from musicshop.models.history import OrderHistoryEntry
from musicshop.models.order import Order, OrderItem, OrderTradeInItem
from musicshop.models.product import Product
from musicshop.models.trade_in import TradeInCatalogEntry, TradeInCondition
from musicshop.models.user import User

__all__ = [
    "TimestampMixin",
    "User",
    "Product",
    "Order",
    "OrderItem",
    "OrderTradeInItem",
    "OrderHistoryEntry",
    "TradeInCatalogEntry",
    "TradeInCondition",
]
