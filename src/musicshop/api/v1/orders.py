"""Order API endpoints for clients, managers and couriers."""

from fastapi import APIRouter, status

from musicshop.api.deps import ClientUser, CourierUser, CurrentUser, DbSession, ManagerUser, Paging
from musicshop.core.enums import AssignmentRole, OrderStatus, UserRole
from musicshop.core.exceptions import InvalidInputError
from musicshop.models.order import Order
from musicshop.schemas.common import ApiResponse, Page, PageMeta
from musicshop.schemas.history import HistoryEntryResponse
from musicshop.schemas.order import (
    CancelRequest,
    ClientStatusUpdate,
    OrderCreate,
    OrderDetailResponse,
    OrderSummaryResponse,
)
from musicshop.services.order_service import OrderService, parse_status
from musicshop.services.query_service import OrderQueryService

router = APIRouter()

STAFF_ROLES = (UserRole.ADMIN, UserRole.MANAGER, UserRole.COURIER)


def summary_page(result: tuple[list[Order], int, int, int]) -> ApiResponse[Page[OrderSummaryResponse]]:
    orders, total, limit, offset = result
    return ApiResponse(
        data=Page(
            items=[OrderSummaryResponse.from_order(order) for order in orders],
            page=PageMeta(limit=limit, offset=offset, total=total),
        )
    )


def detail(order: Order, viewer_role: UserRole) -> ApiResponse[OrderDetailResponse]:
    return ApiResponse(
        data=OrderDetailResponse.from_order(order, include_internal=viewer_role in STAFF_ROLES)
    )


@router.post(
    "",
    response_model=ApiResponse[OrderDetailResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_order(data: OrderCreate, db: DbSession, client: ClientUser):
    """Place an order with optional trade-in lines."""
    order = await OrderService(db).create(client, data)
    return detail(order, client.role)


@router.get("/my", response_model=ApiResponse[Page[OrderSummaryResponse]])
async def get_my_orders(db: DbSession, client: ClientUser, params: Paging):
    """Get current client's orders."""
    return summary_page(await OrderQueryService(db).mine(client, params))


# =============================================================================
# Manager
# =============================================================================

@router.get("/manager/queue", response_model=ApiResponse[Page[OrderSummaryResponse]])
async def get_manager_queue(db: DbSession, manager: ManagerUser, params: Paging):
    """New orders nobody has taken yet."""
    return summary_page(await OrderQueryService(db).queue(manager, params))


@router.get("/manager/my", response_model=ApiResponse[Page[OrderSummaryResponse]])
async def get_manager_orders(db: DbSession, manager: ManagerUser, params: Paging):
    return summary_page(await OrderQueryService(db).mine(manager, params))


# =============================================================================
# Courier
# =============================================================================

@router.get("/courier/queue", response_model=ApiResponse[Page[OrderSummaryResponse]])
async def get_courier_queue(db: DbSession, courier: CourierUser, params: Paging):
    """Ready orders waiting for a courier."""
    return summary_page(await OrderQueryService(db).queue(courier, params))


@router.get("/courier/my", response_model=ApiResponse[Page[OrderSummaryResponse]])
async def get_courier_orders(db: DbSession, courier: CourierUser, params: Paging):
    return summary_page(await OrderQueryService(db).mine(courier, params))


# =============================================================================
# Single order
# =============================================================================

@router.get("/{order_id}", response_model=ApiResponse[OrderDetailResponse])
async def get_order(order_id: int, db: DbSession, current_user: CurrentUser):
    """Get an order visible to the current user."""
    order = await OrderService(db).get_visible_order(order_id, current_user)
    return detail(order, current_user.role)


@router.get("/{order_id}/history", response_model=ApiResponse[list[HistoryEntryResponse]])
async def get_order_history(order_id: int, db: DbSession, current_user: CurrentUser):
    """Get status history of an order, oldest first."""
    entries = await OrderService(db).get_history(order_id, current_user)
    return ApiResponse(data=[HistoryEntryResponse.from_entry(entry) for entry in entries])


@router.post("/{order_id}/manager/take", response_model=ApiResponse[OrderDetailResponse])
async def take_as_manager(order_id: int, db: DbSession, current_user: CurrentUser):
    """Take a new order for preparation.

    Two managers racing for the same order: one gets the order, the other 409.
    """
    order = await OrderService(db).take(order_id, current_user, AssignmentRole.MANAGER)
    return detail(order, current_user.role)


@router.post("/{order_id}/manager/mark-ready", response_model=ApiResponse[OrderDetailResponse])
async def mark_ready(order_id: int, db: DbSession, current_user: CurrentUser):
    order = await OrderService(db).mark_ready(order_id, current_user)
    return detail(order, current_user.role)


@router.post("/{order_id}/manager/cancel", response_model=ApiResponse[OrderDetailResponse])
async def cancel_as_manager(
    order_id: int, data: CancelRequest, db: DbSession, manager: ManagerUser
):
    """Cancel an unassigned order or one assigned to the current manager."""
    order = await OrderService(db).cancel(order_id, manager, data.reason)
    return detail(order, manager.role)


@router.post("/{order_id}/courier/take", response_model=ApiResponse[OrderDetailResponse])
async def take_as_courier(order_id: int, db: DbSession, current_user: CurrentUser):
    order = await OrderService(db).take(order_id, current_user, AssignmentRole.COURIER)
    return detail(order, current_user.role)


@router.post("/{order_id}/courier/finish", response_model=ApiResponse[OrderDetailResponse])
async def finish_delivery(order_id: int, db: DbSession, current_user: CurrentUser):
    order = await OrderService(db).finish(order_id, current_user)
    return detail(order, current_user.role)


@router.patch("/{order_id}/status", response_model=ApiResponse[OrderDetailResponse])
async def update_own_order_status(
    order_id: int, data: ClientStatusUpdate, db: DbSession, client: ClientUser
):
    """Client self-service status change; only cancellation is supported."""
    if parse_status(data.status) != OrderStatus.CANCELED:
        raise InvalidInputError("Clients can only cancel orders")
    order = await OrderService(db).cancel(order_id, client, data.reason)
    return detail(order, client.role)
