"""Pydantic schemas for request/response validation."""

from musicshop.schemas.common import ApiResponse, ErrorResponse, Page, PageMeta
from musicshop.schemas.history import HistoryEntryResponse
from musicshop.schemas.order import (
    AdminOrderFilters,
    AssignRequest,
    CancelRequest,
    ClientStatusUpdate,
    DeliveryUpdate,
    InternalCommentUpdate,
    ListParams,
    OrderCounters,
    OrderCreate,
    OrderDetailResponse,
    OrderSummaryResponse,
    StatusOverride,
    UnassignRequest,
)
from musicshop.schemas.trade_in import (
    TradeInCatalogCreate,
    TradeInCatalogResponse,
    TradeInConditionResponse,
    TradeInQuoteRequest,
    TradeInQuoteResponse,
)
from musicshop.schemas.user import UserResponse

__all__ = [
    "ApiResponse",
    "ErrorResponse",
    "Page",
    "PageMeta",
    "HistoryEntryResponse",
    "OrderCreate",
    "ClientStatusUpdate",
    "CancelRequest",
    "StatusOverride",
    "AssignRequest",
    "UnassignRequest",
    "DeliveryUpdate",
    "InternalCommentUpdate",
    "ListParams",
    "AdminOrderFilters",
    "OrderSummaryResponse",
    "OrderDetailResponse",
    "OrderCounters",
    "TradeInCatalogCreate",
    "TradeInCatalogResponse",
    "TradeInConditionResponse",
    "TradeInQuoteRequest",
    "TradeInQuoteResponse",
    "UserResponse",
]
