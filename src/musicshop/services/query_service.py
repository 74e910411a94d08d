"""Read-only list views over orders: staff queues, own orders, back office list.

Reads take no locks; a row shown in a queue may already be gone when the
user acts on it, which the take itself reports as a conflict.
"""

from datetime import datetime, time, timedelta

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from musicshop.core.config import settings
from musicshop.core.enums import TERMINAL_STATUSES, OrderStatus, UserRole
from musicshop.core.exceptions import ForbiddenError, InvalidInputError
from musicshop.models.order import Order
from musicshop.models.user import User
from musicshop.schemas.order import AdminOrderFilters, ListParams, OrderCounters, StaffCount

Client = aliased(User, name="client")
Manager = aliased(User, name="manager")
Courier = aliased(User, name="courier")

SORT_COLUMNS = {
    "id": Order.id,
    "created_at": Order.created_at,
    "status": Order.status,
    "total": Order.total,
    "client_name": Client.full_name,
    "manager_name": Manager.full_name,
    "courier_name": Courier.full_name,
}

SORT_DIRECTIONS = ("asc", "desc")


def _with_people(stmt: Select) -> Select:
    return (
        stmt.join(Client, Order.client_id == Client.id)
        .outerjoin(Manager, Order.manager_id == Manager.id)
        .outerjoin(Courier, Order.courier_id == Courier.id)
    )


class OrderQueryService:
    """Service class for order list views."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _order_by(self, params: ListParams, default_dir: str) -> list:
        sort_by = params.sort_by or "created_at"
        column = SORT_COLUMNS.get(sort_by)
        if column is None:
            raise InvalidInputError(
                f"Unsupported sort field '{sort_by}'",
                details=f"Allowed: {', '.join(SORT_COLUMNS)}",
            )
        sort_dir = (params.sort_dir or default_dir).lower()
        if sort_dir not in SORT_DIRECTIONS:
            raise InvalidInputError(f"Unsupported sort direction '{params.sort_dir}'")

        primary = column.asc() if sort_dir == "asc" else column.desc()
        if sort_by == "id":
            return [primary]
        return [primary, Order.id.desc()]

    def _limits(self, params: ListParams) -> tuple[int, int]:
        limit = params.limit if params.limit is not None else settings.DEFAULT_PAGE_LIMIT
        if limit < 1 or limit > settings.MAX_PAGE_LIMIT:
            raise InvalidInputError(f"limit must be between 1 and {settings.MAX_PAGE_LIMIT}")
        if params.offset < 0:
            raise InvalidInputError("offset must not be negative")
        return limit, params.offset

    async def _page(
        self, conditions: list, params: ListParams, default_dir: str = "desc"
    ) -> tuple[list[Order], int, int, int]:
        """Run a filtered, sorted and paged order query.

        Returns:
            Tuple of (orders, total, limit, offset)
        """
        order_by = self._order_by(params, default_dir)
        limit, offset = self._limits(params)

        count_result = await self.db.execute(
            _with_people(select(func.count(Order.id)).select_from(Order)).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self.db.execute(
            _with_people(select(Order))
            .options(
                selectinload(Order.client),
                selectinload(Order.manager),
                selectinload(Order.courier),
            )
            .where(*conditions)
            .order_by(*order_by)
            .offset(offset)
            .limit(limit)
        )
        orders = list(result.scalars().all())

        return orders, total, limit, offset

    async def queue(self, user: User, params: ListParams) -> tuple[list[Order], int, int, int]:
        """Orders waiting to be taken by the user's role, oldest first by default."""
        if user.role == UserRole.MANAGER:
            conditions = [Order.status == OrderStatus.NEW, Order.manager_id.is_(None)]
        elif user.role == UserRole.COURIER:
            conditions = [Order.status == OrderStatus.READY, Order.courier_id.is_(None)]
        else:
            raise ForbiddenError("Only managers and couriers have a queue")
        return await self._page(conditions, params, default_dir="asc")

    async def mine(self, user: User, params: ListParams) -> tuple[list[Order], int, int, int]:
        """Orders placed by a client or assigned to a staff member."""
        if user.role == UserRole.CLIENT:
            conditions = [Order.client_id == user.id]
        elif user.role == UserRole.MANAGER:
            conditions = [Order.manager_id == user.id]
        elif user.role == UserRole.COURIER:
            conditions = [Order.courier_id == user.id]
        else:
            raise ForbiddenError("Admins have no own orders, use the admin list")

        if params.hide_closed:
            conditions.append(Order.status.not_in(TERMINAL_STATUSES))
        return await self._page(conditions, params)

    def _filter_conditions(self, filters: AdminOrderFilters, skip: str | None = None) -> list:
        """Translate admin filters into SQL conditions.

        Args:
            filters: Back office filters
            skip: Filter dimension to leave out (used by facet counters)
        """
        conditions = []
        if filters.status is not None and skip != "status":
            conditions.append(Order.status == filters.status)
        if filters.client_id is not None:
            conditions.append(Order.client_id == filters.client_id)
        if filters.manager_id is not None and skip != "manager_id":
            conditions.append(Order.manager_id == filters.manager_id)
        if filters.courier_id is not None and skip != "courier_id":
            conditions.append(Order.courier_id == filters.courier_id)
        if filters.date_from is not None:
            conditions.append(Order.created_at >= datetime.combine(filters.date_from, time.min))
        if filters.date_to is not None:
            # Inclusive: everything before the start of the next day
            next_day = datetime.combine(filters.date_to + timedelta(days=1), time.min)
            conditions.append(Order.created_at < next_day)

        q = (filters.q or "").strip()
        if q:
            # Wildcards typed by the user match literally
            literal = q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{literal.lower()}%"
            matches = [
                func.lower(Client.email).like(pattern, escape="\\"),
                func.lower(Client.full_name).like(pattern, escape="\\"),
                Client.phone.like(f"%{literal}%", escape="\\"),
            ]
            if q.isdigit():
                matches.append(Order.id == int(q))
            conditions.append(or_(*matches))

        return conditions

    async def admin(
        self, filters: AdminOrderFilters, params: ListParams
    ) -> tuple[list[Order], int, int, int]:
        """Back office order list."""
        conditions = self._filter_conditions(filters)
        if params.hide_closed:
            conditions.append(Order.status.not_in(TERMINAL_STATUSES))
        return await self._page(conditions, params)

    async def _staff_facet(self, alias, column, conditions: list) -> list[StaffCount]:
        result = await self.db.execute(
            _with_people(
                select(alias.id, alias.full_name, func.count(Order.id)).select_from(Order)
            )
            .where(*conditions)
            .where(column.is_not(None))
            .group_by(alias.id, alias.full_name)
            .order_by(func.count(Order.id).desc(), alias.full_name.asc())
        )
        return [
            StaffCount(user_id=user_id, full_name=full_name, count=count)
            for user_id, full_name, count in result.all()
        ]

    async def counters(self, filters: AdminOrderFilters) -> OrderCounters:
        """Facet counts by status, manager and courier.

        Each facet ignores its own filter so the UI can offer the alternatives;
        all other filters apply as in the list.
        """
        result = await self.db.execute(
            _with_people(select(Order.status, func.count(Order.id)).select_from(Order))
            .where(*self._filter_conditions(filters, skip="status"))
            .group_by(Order.status)
        )
        by_status = {str(status): 0 for status in OrderStatus}
        for status, count in result.all():
            by_status[str(status)] = count

        by_manager = await self._staff_facet(
            Manager, Order.manager_id, self._filter_conditions(filters, skip="manager_id")
        )
        by_courier = await self._staff_facet(
            Courier, Order.courier_id, self._filter_conditions(filters, skip="courier_id")
        )

        return OrderCounters(by_status=by_status, by_manager=by_manager, by_courier=by_courier)
