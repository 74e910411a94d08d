"""Exclusive manager/courier hand-off of orders.

Every operation here is a single conditional UPDATE on the order row. When the
UPDATE matches nothing, the order is probed only to tell NotFound from Conflict;
the row is never read first and written afterwards.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from musicshop.core.enums import AssignmentRole, OrderStatus, UserRole
from musicshop.core.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from musicshop.models.base import utcnow
from musicshop.models.order import Order
from musicshop.models.user import User
from musicshop.services.history_service import HistoryService
from musicshop.services.user_service import UserService

logger = logging.getLogger(__name__)

# role -> (required status, status after take, assignee column, timestamp column)
TAKE_RULES = {
    AssignmentRole.MANAGER: (OrderStatus.NEW, OrderStatus.PREPARING, "manager_id", "manager_taken_at"),
    AssignmentRole.COURIER: (OrderStatus.READY, OrderStatus.DELIVERING, "courier_id", "courier_taken_at"),
}


def assignee_column(role: AssignmentRole):
    return Order.manager_id if role == AssignmentRole.MANAGER else Order.courier_id


class AssignmentService:
    """Service class for taking, assigning and unassigning orders."""

    def __init__(self, db: AsyncSession, history: HistoryService | None = None):
        self.db = db
        self.history = history or HistoryService(db)

    async def _order_exists(self, order_id: int) -> bool:
        result = await self.db.execute(select(Order.id).where(Order.id == order_id))
        return result.scalar_one_or_none() is not None

    async def take(self, order_id: int, actor: User, role: AssignmentRole) -> OrderStatus:
        """Claim an unassigned order from the role's queue.

        Args:
            order_id: Order ID
            actor: Manager or courier taking the order
            role: Queue the order is taken from

        Returns:
            The status the order moved to

        Raises:
            ForbiddenError: Actor does not hold ``role``
            NotFoundError: Order does not exist
            ConflictError: Order already taken or not in the queue's status
        """
        if actor.role != role.user_role:
            raise ForbiddenError(f"Only a {role} can take this order")

        source, target, assignee_key, taken_at_key = TAKE_RULES[role]
        column = assignee_column(role)

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status == source)
            .where(column.is_(None))
            .values({"status": target, assignee_key: actor.id, taken_at_key: utcnow()})
            .returning(Order.id)
        )
        if result.first() is None:
            if not await self._order_exists(order_id):
                raise NotFoundError(f"Order {order_id} not found")
            logger.warning(f"Take of order {order_id} by {role} {actor.id} lost: already taken or not {source}")
            raise ConflictError(
                "Order is no longer available",
                details=f"Order must be '{source}' with no {role} assigned",
            )

        await self.history.append(order_id, source, target, actor)
        logger.info(f"Order {order_id} taken by {role} {actor.id}")
        return target

    async def assign(
        self, order_id: int, role: AssignmentRole, user_id: int, actor: User
    ) -> OrderStatus:
        """Set the manager or courier of an order regardless of its status (admin only)."""
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Admin privileges required")

        user = await UserService(self.db).get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.role != role.user_role:
            raise InvalidInputError("User role mismatch", details=f"User {user_id} is not a {role}")

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values({assignee_column(role).key: user_id})
            .returning(Order.status)
        )
        row = result.first()
        if row is None:
            raise NotFoundError(f"Order {order_id} not found")

        status = OrderStatus(row[0])
        await self.history.append(order_id, status, status, actor, note=f"Assigned {role} to user {user_id}")
        logger.info(f"Order {order_id}: {role} set to user {user_id} by admin {actor.id}")
        return status

    async def unassign(
        self, order_id: int, role: AssignmentRole, note: str | None, actor: User
    ) -> OrderStatus:
        """Clear the manager or courier of an order (admin only); a note is required."""
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Admin privileges required")

        note = (note or "").strip()
        if not note:
            raise InvalidInputError("Note is required to unassign")

        column = assignee_column(role)
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id)
            .where(column.is_not(None))
            .values({column.key: None})
            .returning(Order.status)
        )
        row = result.first()
        if row is None:
            if not await self._order_exists(order_id):
                raise NotFoundError(f"Order {order_id} not found")
            raise ConflictError("No active assignment", details=f"Order {order_id} has no {role}")

        status = OrderStatus(row[0])
        await self.history.append(order_id, status, status, actor, note=note)
        logger.info(f"Order {order_id}: {role} cleared by admin {actor.id}")
        return status
