"""Order schemas for request/response validation."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, Field

from musicshop.core.enums import AssignmentRole, OrderStatus
from musicshop.models.order import Order


# =============================================================================
# Requests
# =============================================================================

class OrderItemCreate(BaseModel):
    """One purchased product line."""

    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class TradeInItemCreate(BaseModel):
    """One traded-in product line."""

    product_id: int = Field(..., gt=0)
    condition_code: str = Field(..., max_length=32)
    quantity: int = Field(default=1, gt=0)


class DeliveryInfo(BaseModel):
    phone: str = Field(..., max_length=40)
    address: str = Field(..., max_length=500)
    contact_name: str | None = Field(default=None, max_length=150)
    comment: str | None = None


class OrderCreate(BaseModel):
    """Schema for placing an order."""

    items: list[OrderItemCreate]
    trade_in_items: list[TradeInItemCreate] = Field(default_factory=list)
    delivery: DeliveryInfo


class ClientStatusUpdate(BaseModel):
    """Client-side status change; only ``canceled`` is accepted."""

    status: str
    reason: str | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class StatusOverride(BaseModel):
    status: str
    note: str | None = None


class AssignRequest(BaseModel):
    role: AssignmentRole
    user_id: int = Field(..., gt=0, validation_alias=AliasChoices("userId", "user_id"))


class UnassignRequest(BaseModel):
    role: AssignmentRole
    note: str | None = None


class DeliveryUpdate(BaseModel):
    """Partial delivery edit; only fields present in the request are changed."""

    contact_name: str | None = Field(default=None, max_length=150)
    delivery_phone: str | None = Field(default=None, max_length=40)
    delivery_address: str | None = Field(default=None, max_length=500)
    comment_client: str | None = None


class InternalCommentUpdate(BaseModel):
    comment: str | None = None


class ListParams(BaseModel):
    """Sorting and paging of list views."""

    sort_by: str | None = None
    sort_dir: str | None = None
    limit: int | None = None
    offset: int = 0
    hide_closed: bool = False


class AdminOrderFilters(BaseModel):
    """Filters of the back office order list and its counters."""

    status: OrderStatus | None = None
    client_id: int | None = None
    manager_id: int | None = None
    courier_id: int | None = None
    date_from: date | None = None
    date_to: date | None = None
    q: str | None = None


# =============================================================================
# Responses
# =============================================================================

class OrderItemResponse(BaseModel):
    position: int
    product_id: int
    product_name: str | None = None
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


class OrderTradeInItemResponse(BaseModel):
    position: int
    product_id: int
    product_name: str | None = None
    condition_code: str
    quantity: int
    base_amount: Decimal
    percent: Decimal
    unit_discount: Decimal
    line_discount: Decimal


class OrderSummaryResponse(BaseModel):
    """Row of a list view."""

    id: int
    status: OrderStatus
    status_id: int
    client_id: int
    client_name: str | None = None
    manager_id: int | None = None
    manager_name: str | None = None
    courier_id: int | None = None
    courier_name: str | None = None
    delivery_address: str
    total_items: Decimal
    total_discount: Decimal
    total: Decimal
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def _summary_fields(order: Order) -> dict:
        return dict(
            id=order.id,
            status=order.status,
            status_id=order.status.status_id,
            client_id=order.client_id,
            client_name=order.client.full_name if order.client else None,
            manager_id=order.manager_id,
            manager_name=order.manager.full_name if order.manager else None,
            courier_id=order.courier_id,
            courier_name=order.courier.full_name if order.courier else None,
            delivery_address=order.delivery_address,
            total_items=order.total_items,
            total_discount=order.total_discount,
            total=order.total,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    @classmethod
    def from_order(cls, order: Order) -> "OrderSummaryResponse":
        return cls(**cls._summary_fields(order))


class OrderDetailResponse(OrderSummaryResponse):
    """Full order with frozen lines and delivery data."""

    contact_name: str | None = None
    delivery_phone: str
    client_phone: str | None = None
    client_email: str | None = None
    comment_client: str | None = None
    comment_internal: str | None = None
    canceled_reason: str | None = None
    manager_taken_at: datetime | None = None
    ready_at: datetime | None = None
    courier_taken_at: datetime | None = None
    finished_at: datetime | None = None
    canceled_at: datetime | None = None
    items: list[OrderItemResponse]
    trade_in_items: list[OrderTradeInItemResponse]

    @classmethod
    def from_order(cls, order: Order, include_internal: bool = False) -> "OrderDetailResponse":
        """Build the detail view; the internal comment is only shown to staff."""
        return cls(
            **cls._summary_fields(order),
            contact_name=order.contact_name,
            delivery_phone=order.delivery_phone,
            client_phone=order.client.phone if order.client else None,
            client_email=order.client.email if order.client else None,
            comment_client=order.comment_client,
            comment_internal=order.comment_internal if include_internal else None,
            canceled_reason=order.canceled_reason,
            manager_taken_at=order.manager_taken_at,
            ready_at=order.ready_at,
            courier_taken_at=order.courier_taken_at,
            finished_at=order.finished_at,
            canceled_at=order.canceled_at,
            items=[
                OrderItemResponse(
                    position=item.position,
                    product_id=item.product_id,
                    product_name=item.product.name if item.product else None,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    subtotal=item.subtotal,
                )
                for item in order.items
            ],
            trade_in_items=[
                OrderTradeInItemResponse(
                    position=line.position,
                    product_id=line.product_id,
                    product_name=line.product.name if line.product else None,
                    condition_code=line.condition_code,
                    quantity=line.quantity,
                    base_amount=line.base_amount,
                    percent=line.percent,
                    unit_discount=line.unit_discount,
                    line_discount=line.line_discount,
                )
                for line in order.trade_in_items
            ],
        )


class StatusOption(BaseModel):
    id: int
    name: OrderStatus


class StaffCount(BaseModel):
    user_id: int
    full_name: str
    count: int


class OrderCounters(BaseModel):
    """Facet counts for the back office filters."""

    by_status: dict[str, int]
    by_manager: list[StaffCount]
    by_courier: list[StaffCount]
