"""Tests for taking, assigning and unassigning orders."""

import asyncio

import pytest
from sqlalchemy import select

from musicshop.core.enums import AssignmentRole, OrderStatus
from musicshop.core.exceptions import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from musicshop.models.order import Order
from musicshop.services.order_service import OrderService


async def load_order(session_maker, order_id: int) -> Order:
    async with session_maker() as session:
        return await session.get(Order, order_id)


@pytest.fixture
async def order_id(db, shop, order_data) -> int:
    order = await OrderService(db).create(shop.client, order_data([(shop.guitar, 1)]))
    return order.id


class TestTake:
    """Test exclusive take from the queues."""

    @pytest.mark.asyncio
    @pytest.mark.concurrency
    async def test_concurrent_manager_take_has_one_winner(self, session_maker, shop, order_id):
        """Two managers race for one order: exactly one wins, the other gets a conflict."""

        async def take(manager):
            async with session_maker() as session:
                order = await OrderService(session).take(order_id, manager, AssignmentRole.MANAGER)
                return order.manager_id

        results = await asyncio.gather(
            take(shop.manager), take(shop.other_manager), return_exceptions=True
        )

        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], ConflictError)
        assert winners[0] in (shop.manager.id, shop.other_manager.id)

        order = await load_order(session_maker, order_id)
        assert order.status == OrderStatus.PREPARING
        assert order.manager_id == winners[0]
        assert order.manager_taken_at is not None

        async with session_maker() as session:
            entries = await OrderService(session).history.list(order_id)
        assert [e.new_status for e in entries] == [OrderStatus.NEW, OrderStatus.PREPARING]
        assert entries[-1].changed_by_id == winners[0]

    @pytest.mark.asyncio
    async def test_second_take_conflicts(self, db, shop, order_id):
        service = OrderService(db)
        await service.take(order_id, shop.manager, AssignmentRole.MANAGER)

        with pytest.raises(ConflictError) as exc_info:
            await service.take(order_id, shop.other_manager, AssignmentRole.MANAGER)
        assert exc_info.value.message == "Order is no longer available"

        order = await service.get_order(order_id)
        assert order.manager_id == shop.manager.id

    @pytest.mark.asyncio
    async def test_courier_takes_ready_order(self, db, shop, order_id):
        service = OrderService(db)
        await service.take(order_id, shop.manager, AssignmentRole.MANAGER)
        await service.mark_ready(order_id, shop.manager)

        order = await service.take(order_id, shop.courier, AssignmentRole.COURIER)

        assert order.status == OrderStatus.DELIVERING
        assert order.courier_id == shop.courier.id
        assert order.courier_taken_at is not None

    @pytest.mark.asyncio
    async def test_role_must_match_queue(self, db, shop, order_id):
        with pytest.raises(ForbiddenError):
            await OrderService(db).take(order_id, shop.courier, AssignmentRole.MANAGER)
        with pytest.raises(ForbiddenError):
            await OrderService(db).take(order_id, shop.admin, AssignmentRole.MANAGER)

    @pytest.mark.asyncio
    async def test_unknown_order(self, db, shop):
        with pytest.raises(NotFoundError):
            await OrderService(db).take(4242, shop.manager, AssignmentRole.MANAGER)


class TestAssign:
    """Test admin assignment."""

    @pytest.mark.asyncio
    async def test_assign_keeps_status(self, db, shop, order_id):
        service = OrderService(db)
        order = await service.assign(order_id, AssignmentRole.MANAGER, shop.manager.id, shop.admin)

        assert order.manager_id == shop.manager.id
        assert order.status == OrderStatus.NEW

        entries = await service.get_history(order_id, shop.admin)
        assert entries[-1].note == f"Assigned manager to user {shop.manager.id}"
        assert entries[-1].old_status == entries[-1].new_status == OrderStatus.NEW

    @pytest.mark.asyncio
    async def test_assigned_order_leaves_the_queue(self, db, shop, order_id):
        service = OrderService(db)
        await service.assign(order_id, AssignmentRole.MANAGER, shop.other_manager.id, shop.admin)

        with pytest.raises(ConflictError):
            await service.take(order_id, shop.manager, AssignmentRole.MANAGER)

    @pytest.mark.asyncio
    async def test_reassign_replaces_assignee(self, db, shop, order_id):
        service = OrderService(db)
        await service.take(order_id, shop.manager, AssignmentRole.MANAGER)

        order = await service.assign(order_id, AssignmentRole.MANAGER, shop.other_manager.id, shop.admin)

        assert order.manager_id == shop.other_manager.id
        assert order.status == OrderStatus.PREPARING

    @pytest.mark.asyncio
    async def test_role_mismatch(self, db, shop, order_id):
        with pytest.raises(InvalidInputError) as exc_info:
            await OrderService(db).assign(order_id, AssignmentRole.COURIER, shop.manager.id, shop.admin)
        assert exc_info.value.message == "User role mismatch"

    @pytest.mark.asyncio
    async def test_unknown_user_or_order(self, db, shop, order_id):
        service = OrderService(db)
        with pytest.raises(NotFoundError):
            await service.assign(order_id, AssignmentRole.MANAGER, 9999, shop.admin)
        with pytest.raises(NotFoundError):
            await service.assign(9999, AssignmentRole.MANAGER, shop.manager.id, shop.admin)

    @pytest.mark.asyncio
    async def test_admin_only(self, db, shop, order_id):
        with pytest.raises(ForbiddenError):
            await OrderService(db).assign(order_id, AssignmentRole.MANAGER, shop.manager.id, shop.manager)


class TestUnassign:
    """Test admin unassignment."""

    @pytest.mark.asyncio
    async def test_unassign_clears_assignee_and_records_note(self, db, shop, order_id):
        service = OrderService(db)
        await service.take(order_id, shop.manager, AssignmentRole.MANAGER)

        order = await service.unassign(order_id, AssignmentRole.MANAGER, "Manager on leave", shop.admin)

        assert order.manager_id is None
        assert order.status == OrderStatus.PREPARING
        entries = await service.get_history(order_id, shop.admin)
        assert entries[-1].note == "Manager on leave"

    @pytest.mark.asyncio
    async def test_no_active_assignment(self, db, shop, order_id):
        with pytest.raises(ConflictError) as exc_info:
            await OrderService(db).unassign(order_id, AssignmentRole.COURIER, "Nobody to clear", shop.admin)
        assert exc_info.value.message == "No active assignment"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("note", [None, "", "   "])
    async def test_note_required(self, db, shop, order_id, note):
        service = OrderService(db)
        await service.take(order_id, shop.manager, AssignmentRole.MANAGER)

        with pytest.raises(InvalidInputError):
            await service.unassign(order_id, AssignmentRole.MANAGER, note, shop.admin)

        result = await db.execute(select(Order.manager_id).where(Order.id == order_id))
        assert result.scalar_one() == shop.manager.id

    @pytest.mark.asyncio
    async def test_unknown_order(self, db, shop):
        with pytest.raises(NotFoundError):
            await OrderService(db).unassign(9999, AssignmentRole.MANAGER, "Cleanup", shop.admin)
