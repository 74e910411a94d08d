"""Order lifecycle: checkout, status transitions and back office edits.

Every transition is a compare-and-set UPDATE against the persisted status
(plus the assignee where the actor must be the assignee) and commits together
with its history entry. Losing a race surfaces as ConflictError; nothing is
retried here.
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, NoReturn

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from musicshop.core.config import settings
from musicshop.core.database import unit_of_work
from musicshop.core.enums import CANCELABLE_STATUSES, AssignmentRole, OrderStatus, UserRole
from musicshop.core.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from musicshop.middleware.metrics import record_order_transition, record_trade_in_discount
from musicshop.models.base import utcnow
from musicshop.models.history import OrderHistoryEntry
from musicshop.models.order import Order, OrderItem, OrderTradeInItem
from musicshop.models.product import Product
from musicshop.models.user import User
from musicshop.schemas.order import DeliveryUpdate, OrderCreate
from musicshop.services.assignment_service import AssignmentService
from musicshop.services.history_service import HistoryService
from musicshop.services.pricing import (
    ZERO,
    DiscountLine,
    cap_discount,
    compute_order_discount,
    round_money,
)
from musicshop.services.trade_in_service import TradeInService

logger = logging.getLogger(__name__)

# Timestamp column stamped when an order enters the status
STATUS_TIMESTAMPS = {
    OrderStatus.READY: "ready_at",
    OrderStatus.FINISHED: "finished_at",
    OrderStatus.CANCELED: "canceled_at",
}

DELIVERY_FIELDS = ("contact_name", "delivery_phone", "delivery_address", "comment_client")


def parse_status(value: OrderStatus | str) -> OrderStatus:
    """Parse a status name, raising InvalidInputError for unknown names."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus((value or "").strip().lower())
    except ValueError:
        raise InvalidInputError(f"Unknown status '{value}'") from None


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class OrderService:
    """Service class for order lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.history = HistoryService(db)
        self.assignments = AssignmentService(db, self.history)

    @asynccontextmanager
    async def _transition(self, name: str) -> AsyncIterator[None]:
        """Run one state change as a unit of work and count its outcome."""
        try:
            async with unit_of_work(self.db):
                yield
        except ConflictError:
            record_order_transition(name, "conflict")
            raise
        record_order_transition(name)

    async def _compare_and_set(
        self,
        order_id: int,
        expected: OrderStatus,
        target: OrderStatus,
        *criteria,
        **values,
    ) -> bool:
        """Move an order from ``expected`` to ``target`` if it is still there."""
        timestamp = STATUS_TIMESTAMPS.get(target)
        if timestamp is not None:
            values.setdefault(timestamp, utcnow())
        stmt = update(Order).where(Order.id == order_id).where(Order.status == expected)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        result = await self.db.execute(
            stmt.values(status=target, **values).returning(Order.id)
        )
        return result.first() is not None

    async def _raise_rejected(self, order_id: int, action: str) -> NoReturn:
        """Explain why a conditional update matched no row."""
        result = await self.db.execute(
            select(Order.status).where(Order.id == order_id)
        )
        current = result.scalar_one_or_none()
        if current is None:
            raise NotFoundError(f"Order {order_id} not found")
        logger.warning(f"Order {order_id}: {action} rejected in status '{current}'")
        raise ConflictError(
            f"Order cannot be {action}",
            details=f"Order is '{current}' or assigned to someone else",
        )

    # =========================================================================
    # Checkout
    # =========================================================================

    async def create(self, client: User, data: OrderCreate) -> Order:
        """Place an order, freezing prices and trade-in payouts.

        Args:
            client: Ordering client
            data: Purchased lines, trade-in lines and delivery info

        Returns:
            Created order with lines loaded

        Raises:
            ForbiddenError: Actor is not a client
            InvalidInputError: Empty cart, bad quantity or missing delivery data
            NotFoundError: Unknown product or trade-in condition
            ConflictError: Product is not available
        """
        if client.role != UserRole.CLIENT:
            raise ForbiddenError("Only clients can place orders")
        if not data.items:
            raise InvalidInputError("Order must contain at least one item")

        phone = _clean(data.delivery.phone)
        address = _clean(data.delivery.address)
        if phone is None or address is None:
            raise InvalidInputError("Delivery phone and address are required")

        for line in [*data.items, *data.trade_in_items]:
            if line.product_id <= 0:
                raise InvalidInputError(f"Invalid product id {line.product_id}")
            if line.quantity <= 0:
                raise InvalidInputError("Quantity must be a positive integer")

        async with self._transition("create"):
            product_ids = {line.product_id for line in data.items}
            product_ids |= {line.product_id for line in data.trade_in_items}
            result = await self.db.execute(select(Product).where(Product.id.in_(product_ids)))
            products = {product.id: product for product in result.scalars().all()}

            missing = sorted(product_ids - products.keys())
            if missing:
                raise NotFoundError(f"Product {missing[0]} not found")

            order = Order(
                client_id=client.id,
                status=OrderStatus.NEW,
                contact_name=_clean(data.delivery.contact_name),
                delivery_phone=phone,
                delivery_address=address,
                comment_client=_clean(data.delivery.comment),
            )

            items_total = ZERO
            for position, line in enumerate(data.items, start=1):
                product = products[line.product_id]
                if not product.is_available:
                    raise ConflictError(f"Product {product.id} is not available")
                unit_price = round_money(Decimal(product.price))
                subtotal = round_money(unit_price * line.quantity)
                items_total += subtotal
                order.items.append(
                    OrderItem(
                        position=position,
                        product_id=product.id,
                        quantity=line.quantity,
                        unit_price=unit_price,
                        subtotal=subtotal,
                    )
                )

            priced = await TradeInService(self.db).price_lines(data.trade_in_items)
            for position, line in enumerate(priced, start=1):
                order.trade_in_items.append(
                    OrderTradeInItem(
                        position=position,
                        product_id=line.product_id,
                        condition_code=line.condition_code,
                        quantity=line.quantity,
                        base_amount=line.base_amount,
                        percent=line.percent,
                        unit_discount=line.unit_discount,
                        line_discount=line.line_discount,
                    )
                )

            raw_discount = compute_order_discount(
                DiscountLine(unit_discount=line.unit_discount, quantity=line.quantity)
                for line in priced
            )
            total_discount = cap_discount(
                raw_discount, items_total, settings.TRADE_IN_MAX_DISCOUNT_RATIO
            )
            order.total_items = items_total
            order.total_discount = total_discount
            order.total = items_total - total_discount

            self.db.add(order)
            await self.db.flush()
            await self.history.append(order.id, None, OrderStatus.NEW, client, note="Order created")

        if total_discount < raw_discount:
            logger.info(f"Order {order.id}: trade-in discount {raw_discount} capped to {total_discount}")
        record_trade_in_discount(float(total_discount))
        logger.info(f"Order {order.id} created by client {client.id}, total {order.total}")
        return await self.get_order(order.id)

    # =========================================================================
    # Fulfillment transitions
    # =========================================================================

    async def take(self, order_id: int, actor: User, role: AssignmentRole) -> Order:
        """Take an order from the manager or courier queue."""
        async with self._transition(f"take_{role}"):
            await self.assignments.take(order_id, actor, role)
        return await self.get_order(order_id)

    async def mark_ready(self, order_id: int, actor: User) -> Order:
        """Move a preparing order to ready (assigned manager or admin)."""
        if actor.role not in (UserRole.MANAGER, UserRole.ADMIN):
            raise ForbiddenError("Only managers can mark orders ready")

        criteria = []
        if actor.role == UserRole.MANAGER:
            criteria.append(Order.manager_id == actor.id)

        async with self._transition("mark_ready"):
            moved = await self._compare_and_set(
                order_id, OrderStatus.PREPARING, OrderStatus.READY, *criteria
            )
            if not moved:
                await self._raise_rejected(order_id, "marked ready")
            await self.history.append(order_id, OrderStatus.PREPARING, OrderStatus.READY, actor)

        logger.info(f"Order {order_id} ready, marked by {actor.role} {actor.id}")
        return await self.get_order(order_id)

    async def finish(self, order_id: int, actor: User) -> Order:
        """Complete a delivering order (assigned courier or admin)."""
        if actor.role not in (UserRole.COURIER, UserRole.ADMIN):
            raise ForbiddenError("Only couriers can finish orders")

        criteria = []
        if actor.role == UserRole.COURIER:
            criteria.append(Order.courier_id == actor.id)

        async with self._transition("finish"):
            moved = await self._compare_and_set(
                order_id, OrderStatus.DELIVERING, OrderStatus.FINISHED, *criteria
            )
            if not moved:
                await self._raise_rejected(order_id, "finished")
            await self.history.append(order_id, OrderStatus.DELIVERING, OrderStatus.FINISHED, actor)

        logger.info(f"Order {order_id} finished by {actor.role} {actor.id}")
        return await self.get_order(order_id)

    async def cancel(self, order_id: int, actor: User, reason: str | None = None) -> Order:
        """Cancel an order that has not left the shop yet.

        Clients may cancel their own orders without a reason. Managers may
        cancel unassigned orders or their own; admins any cancelable order.
        Staff must give a reason, stored on the order and in the history.

        Args:
            order_id: Order ID
            actor: Client, manager or admin
            reason: Cancellation reason

        Returns:
            Canceled order
        """
        if actor.role == UserRole.COURIER:
            raise ForbiddenError("Couriers cannot cancel orders")

        reason = _clean(reason)
        if actor.role != UserRole.CLIENT:
            min_length = settings.STAFF_CANCEL_REASON_MIN_LENGTH
            if reason is None or len(reason) < min_length:
                raise InvalidInputError(
                    f"Cancellation reason must be at least {min_length} characters"
                )

        async with self._transition("cancel"):
            result = await self.db.execute(
                select(Order.status, Order.client_id, Order.manager_id).where(Order.id == order_id)
            )
            row = result.first()
            if row is None:
                raise NotFoundError(f"Order {order_id} not found")
            current, client_id, manager_id = row

            criteria = []
            if actor.role == UserRole.CLIENT:
                if client_id != actor.id:
                    raise ForbiddenError("Order belongs to another client")
                criteria.append(Order.client_id == actor.id)
            elif actor.role == UserRole.MANAGER:
                if manager_id is not None and manager_id != actor.id:
                    raise ConflictError("Order is assigned to another manager")
                criteria.append(or_(Order.manager_id.is_(None), Order.manager_id == actor.id))

            if current not in CANCELABLE_STATUSES:
                raise ConflictError(
                    "Order cannot be canceled",
                    details=f"Order is '{current}'",
                )

            moved = await self._compare_and_set(
                order_id, current, OrderStatus.CANCELED, *criteria, canceled_reason=reason
            )
            if not moved:
                raise ConflictError("Order was changed concurrently, refresh and retry")
            await self.history.append(order_id, current, OrderStatus.CANCELED, actor, note=reason)

        logger.info(f"Order {order_id} canceled by {actor.role} {actor.id}")
        return await self.get_order(order_id)

    async def override_status(
        self, order_id: int, status: OrderStatus | str, actor: User, note: str | None = None
    ) -> Order:
        """Force a non-terminal order into another status (admin only)."""
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Admin privileges required")
        target = parse_status(status)
        note = _clean(note)

        async with self._transition("override"):
            result = await self.db.execute(select(Order.status).where(Order.id == order_id))
            current = result.scalar_one_or_none()
            if current is None:
                raise NotFoundError(f"Order {order_id} not found")
            if current.is_terminal:
                raise ConflictError(
                    "Order is closed",
                    details=f"Order is '{current}' and can no longer change status",
                )
            if current == target:
                raise InvalidInputError(f"Order is already '{current}'")

            values = {}
            if target == OrderStatus.CANCELED:
                values["canceled_reason"] = note
            moved = await self._compare_and_set(order_id, current, target, **values)
            if not moved:
                raise ConflictError("Order was changed concurrently, refresh and retry")
            await self.history.append(order_id, current, target, actor, note=note)

        logger.info(f"Order {order_id} forced from '{current}' to '{target}' by admin {actor.id}")
        return await self.get_order(order_id)

    # =========================================================================
    # Back office edits
    # =========================================================================

    async def assign(self, order_id: int, role: AssignmentRole, user_id: int, actor: User) -> Order:
        """Set the manager or courier of an order (admin only)."""
        async with self._transition("assign"):
            await self.assignments.assign(order_id, role, user_id, actor)
        return await self.get_order(order_id)

    async def unassign(self, order_id: int, role: AssignmentRole, note: str | None, actor: User) -> Order:
        """Clear the manager or courier of an order (admin only)."""
        async with self._transition("unassign"):
            await self.assignments.unassign(order_id, role, note, actor)
        return await self.get_order(order_id)

    async def update_delivery(self, order_id: int, data: DeliveryUpdate, actor: User) -> Order:
        """Edit delivery fields of an order in any status (admin only)."""
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Admin privileges required")

        values = {
            field: _clean(getattr(data, field))
            for field in DELIVERY_FIELDS
            if field in data.model_fields_set
        }
        if not values:
            raise InvalidInputError("No delivery fields to update")
        for required in ("delivery_phone", "delivery_address"):
            if required in values and values[required] is None:
                raise InvalidInputError(f"{required} cannot be empty")

        async with self._transition("update_delivery"):
            result = await self.db.execute(
                update(Order).where(Order.id == order_id).values(**values).returning(Order.status)
            )
            current = result.scalar_one_or_none()
            if current is None:
                raise NotFoundError(f"Order {order_id} not found")
            await self.history.append(
                order_id, current, current, actor,
                note=f"Updated delivery fields: {', '.join(values)}",
            )

        return await self.get_order(order_id)

    async def update_internal_comment(self, order_id: int, comment: str | None, actor: User) -> Order:
        """Replace the staff-only comment of an order (admin only)."""
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Admin privileges required")

        async with self._transition("update_comment"):
            result = await self.db.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(comment_internal=_clean(comment))
                .returning(Order.status)
            )
            current = result.scalar_one_or_none()
            if current is None:
                raise NotFoundError(f"Order {order_id} not found")
            await self.history.append(order_id, current, current, actor, note="Updated internal comment")

        return await self.get_order(order_id)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_order(self, order_id: int) -> Order | None:
        """Get order by ID with people and lines loaded, fresh from the database."""
        result = await self.db.execute(
            select(Order)
            .options(
                selectinload(Order.client),
                selectinload(Order.manager),
                selectinload(Order.courier),
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.trade_in_items).selectinload(OrderTradeInItem.product),
            )
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def can_view(order: Order, user: User) -> bool:
        """Whether ``user`` may see ``order``.

        Admins see everything, clients their own orders, staff their
        assignments and the orders waiting in their queue.
        """
        if user.role == UserRole.ADMIN:
            return True
        if user.role == UserRole.CLIENT:
            return order.client_id == user.id
        if user.role == UserRole.MANAGER:
            return order.manager_id == user.id or (
                order.status == OrderStatus.NEW and order.manager_id is None
            )
        if user.role == UserRole.COURIER:
            return order.courier_id == user.id or (
                order.status == OrderStatus.READY and order.courier_id is None
            )
        return False

    async def get_visible_order(self, order_id: int, user: User) -> Order:
        """Get an order the user may see; invisible orders look missing."""
        order = await self.get_order(order_id)
        if order is None or not self.can_view(order, user):
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def get_history(self, order_id: int, user: User) -> list[OrderHistoryEntry]:
        """Get the history of an order visible to ``user``, oldest first."""
        await self.get_visible_order(order_id, user)
        return await self.history.list(order_id)
