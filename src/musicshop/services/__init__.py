"""Business logic services."""

from musicshop.services.assignment_service import AssignmentService
from musicshop.services.history_service import HistoryService
from musicshop.services.order_service import OrderService
from musicshop.services.query_service import OrderQueryService
from musicshop.services.trade_in_service import TradeInService
from musicshop.services.user_service import UserService

__all__ = [
    "AssignmentService",
    "HistoryService",
    "OrderService",
    "OrderQueryService",
    "TradeInService",
    "UserService",
]
