"""Back office order API endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from musicshop.api.deps import AdminUser, BackOfficeUser, DbSession, Paging
from musicshop.api.v1.orders import detail, summary_page
from musicshop.core.enums import OrderStatus, UserRole
from musicshop.core.exceptions import InvalidInputError
from musicshop.schemas.common import ApiResponse, Page
from musicshop.schemas.history import HistoryEntryResponse
from musicshop.schemas.order import (
    AdminOrderFilters,
    AssignRequest,
    CancelRequest,
    DeliveryUpdate,
    InternalCommentUpdate,
    OrderCounters,
    OrderDetailResponse,
    OrderSummaryResponse,
    StatusOption,
    StatusOverride,
    UnassignRequest,
)
from musicshop.schemas.user import UserResponse
from musicshop.services.order_service import OrderService, parse_status
from musicshop.services.query_service import OrderQueryService
from musicshop.services.user_service import UserService

router = APIRouter()


def admin_filters(
    status: Annotated[str | None, Query()] = None,
    status_id: Annotated[int | None, Query(alias="statusId")] = None,
    client_id: Annotated[int | None, Query(alias="clientId")] = None,
    manager_id: Annotated[int | None, Query(alias="managerId")] = None,
    courier_id: Annotated[int | None, Query(alias="courierId")] = None,
    date_from: Annotated[date | None, Query(alias="dateFrom")] = None,
    date_to: Annotated[date | None, Query(alias="dateTo")] = None,
    q: Annotated[str | None, Query()] = None,
) -> AdminOrderFilters:
    """Back office filters; ``statusId`` is the 1-based position in the status list."""
    order_status = None
    if status_id is not None:
        try:
            order_status = OrderStatus.from_status_id(status_id)
        except ValueError:
            raise InvalidInputError(f"Unknown status id {status_id}") from None
    elif status:
        order_status = parse_status(status)

    return AdminOrderFilters(
        status=order_status,
        client_id=client_id,
        manager_id=manager_id,
        courier_id=courier_id,
        date_from=date_from,
        date_to=date_to,
        q=q,
    )


Filters = Annotated[AdminOrderFilters, Depends(admin_filters)]


@router.get("", response_model=ApiResponse[Page[OrderSummaryResponse]])
async def list_orders(db: DbSession, admin: AdminUser, filters: Filters, params: Paging):
    """Get all orders matching the back office filters."""
    return summary_page(await OrderQueryService(db).admin(filters, params))


@router.get("/counters", response_model=ApiResponse[OrderCounters])
async def get_counters(db: DbSession, admin: AdminUser, filters: Filters):
    """Facet counts for the filter panel."""
    return ApiResponse(data=await OrderQueryService(db).counters(filters))


@router.get("/statuses", response_model=ApiResponse[list[StatusOption]])
async def list_statuses(admin: AdminUser):
    return ApiResponse(data=[StatusOption(id=s.status_id, name=s) for s in OrderStatus])


@router.get("/users/{role}", response_model=ApiResponse[list[UserResponse]])
async def list_staff(role: UserRole, db: DbSession, admin: AdminUser):
    """Active users of a role, for assignment pickers."""
    users = await UserService(db).list_by_role(role)
    return ApiResponse(data=[UserResponse.model_validate(user) for user in users])


@router.get("/{order_id}", response_model=ApiResponse[OrderDetailResponse])
async def get_order(order_id: int, db: DbSession, admin: AdminUser):
    order = await OrderService(db).get_visible_order(order_id, admin)
    return detail(order, admin.role)


@router.get("/{order_id}/history", response_model=ApiResponse[list[HistoryEntryResponse]])
async def get_order_history(order_id: int, db: DbSession, admin: AdminUser):
    entries = await OrderService(db).get_history(order_id, admin)
    return ApiResponse(data=[HistoryEntryResponse.from_entry(entry) for entry in entries])


@router.post("/{order_id}/cancel", response_model=ApiResponse[OrderDetailResponse])
async def cancel_order(
    order_id: int, data: CancelRequest, db: DbSession, staff: BackOfficeUser
):
    """Cancel an order (admin, or manager within their own orders)."""
    order = await OrderService(db).cancel(order_id, staff, data.reason)
    return detail(order, staff.role)


@router.post("/{order_id}/status", response_model=ApiResponse[OrderDetailResponse])
async def override_status(
    order_id: int, data: StatusOverride, db: DbSession, admin: AdminUser
):
    """Force an open order into another status."""
    order = await OrderService(db).override_status(order_id, data.status, admin, data.note)
    return detail(order, admin.role)


@router.post("/{order_id}/assign", response_model=ApiResponse[OrderDetailResponse])
async def assign(order_id: int, data: AssignRequest, db: DbSession, admin: AdminUser):
    order = await OrderService(db).assign(order_id, data.role, data.user_id, admin)
    return detail(order, admin.role)


@router.post("/{order_id}/unassign", response_model=ApiResponse[OrderDetailResponse])
async def unassign(order_id: int, data: UnassignRequest, db: DbSession, admin: AdminUser):
    order = await OrderService(db).unassign(order_id, data.role, data.note, admin)
    return detail(order, admin.role)


@router.patch("/{order_id}/delivery", response_model=ApiResponse[OrderDetailResponse])
async def update_delivery(
    order_id: int, data: DeliveryUpdate, db: DbSession, admin: AdminUser
):
    order = await OrderService(db).update_delivery(order_id, data, admin)
    return detail(order, admin.role)


@router.patch("/{order_id}/comment-internal", response_model=ApiResponse[OrderDetailResponse])
async def update_internal_comment(
    order_id: int, data: InternalCommentUpdate, db: DbSession, admin: AdminUser
):
    order = await OrderService(db).update_internal_comment(order_id, data.comment, admin)
    return detail(order, admin.role)
