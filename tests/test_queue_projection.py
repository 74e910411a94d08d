"""Tests for queues, own-order lists and the back office list."""

from datetime import timedelta

import pytest

from musicshop.core.enums import AssignmentRole, OrderStatus
from musicshop.core.exceptions import ForbiddenError, InvalidInputError
from musicshop.models.base import utcnow
from musicshop.schemas.order import AdminOrderFilters, ListParams
from musicshop.services.order_service import OrderService
from musicshop.services.query_service import OrderQueryService


def ids(result) -> list[int]:
    orders, _total, _limit, _offset = result
    return [order.id for order in orders]


@pytest.fixture
async def orders(db, shop, order_data):
    """Five orders: two new, one preparing (manager), one ready, one canceled.

    Returns the order ids in creation order.
    """
    service = OrderService(db)
    created = []
    for client in (shop.client, shop.client, shop.other_client, shop.client, shop.other_client):
        order = await service.create(client, order_data([(shop.guitar, 1)]))
        created.append(order.id)

    new_a, new_b, preparing, ready, canceled = created
    await service.take(preparing, shop.manager, AssignmentRole.MANAGER)
    await service.take(ready, shop.other_manager, AssignmentRole.MANAGER)
    await service.mark_ready(ready, shop.other_manager)
    await service.cancel(canceled, shop.other_client)
    return created


class TestQueues:
    """Test role queues."""

    @pytest.mark.asyncio
    async def test_manager_queue_lists_unassigned_new_oldest_first(self, db, shop, orders):
        result = await OrderQueryService(db).queue(shop.manager, ListParams())
        assert ids(result) == [orders[0], orders[1]]

    @pytest.mark.asyncio
    async def test_courier_queue_lists_ready(self, db, shop, orders):
        result = await OrderQueryService(db).queue(shop.courier, ListParams())
        assert ids(result) == [orders[3]]

    @pytest.mark.asyncio
    async def test_taken_order_leaves_queue(self, db, shop, orders):
        await OrderService(db).take(orders[0], shop.manager, AssignmentRole.MANAGER)
        result = await OrderQueryService(db).queue(shop.other_manager, ListParams())
        assert ids(result) == [orders[1]]

    @pytest.mark.asyncio
    async def test_clients_have_no_queue(self, db, shop):
        with pytest.raises(ForbiddenError):
            await OrderQueryService(db).queue(shop.client, ListParams())


class TestMine:
    """Test own-order lists."""

    @pytest.mark.asyncio
    async def test_client_sees_own_orders_newest_first(self, db, shop, orders):
        result = await OrderQueryService(db).mine(shop.client, ListParams())
        assert ids(result) == [orders[3], orders[1], orders[0]]

    @pytest.mark.asyncio
    async def test_hide_closed(self, db, shop, orders):
        query = OrderQueryService(db)
        assert ids(await query.mine(shop.other_client, ListParams())) == [orders[4], orders[2]]
        assert ids(await query.mine(shop.other_client, ListParams(hide_closed=True))) == [orders[2]]

    @pytest.mark.asyncio
    async def test_staff_see_assignments(self, db, shop, orders):
        query = OrderQueryService(db)
        assert ids(await query.mine(shop.manager, ListParams())) == [orders[2]]
        assert ids(await query.mine(shop.other_manager, ListParams())) == [orders[3]]
        assert ids(await query.mine(shop.courier, ListParams())) == []

    @pytest.mark.asyncio
    async def test_admin_has_no_own_list(self, db, shop):
        with pytest.raises(ForbiddenError):
            await OrderQueryService(db).mine(shop.admin, ListParams())


class TestSortingAndPaging:
    """Test the sort whitelist and page bounds."""

    @pytest.mark.asyncio
    async def test_sort_by_id_ascending(self, db, shop, orders):
        result = await OrderQueryService(db).admin(
            AdminOrderFilters(), ListParams(sort_by="id", sort_dir="asc")
        )
        assert ids(result) == orders

    @pytest.mark.asyncio
    async def test_sort_by_client_name(self, db, shop, orders):
        result = await OrderQueryService(db).admin(
            AdminOrderFilters(), ListParams(sort_by="client_name", sort_dir="asc")
        )
        # Dan before Eva; ties newest first
        assert ids(result) == [orders[3], orders[1], orders[0], orders[4], orders[2]]

    @pytest.mark.asyncio
    async def test_unknown_sort_field(self, db, shop):
        with pytest.raises(InvalidInputError):
            await OrderQueryService(db).admin(AdminOrderFilters(), ListParams(sort_by="password"))

    @pytest.mark.asyncio
    async def test_unknown_sort_direction(self, db, shop):
        with pytest.raises(InvalidInputError):
            await OrderQueryService(db).admin(AdminOrderFilters(), ListParams(sort_dir="sideways"))

    @pytest.mark.asyncio
    async def test_paging(self, db, shop, orders):
        orders_page, total, limit, offset = await OrderQueryService(db).admin(
            AdminOrderFilters(), ListParams(sort_by="id", sort_dir="asc", limit=2, offset=2)
        )
        assert [o.id for o in orders_page] == orders[2:4]
        assert (total, limit, offset) == (5, 2, 2)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit, offset", [(0, 0), (101, 0), (10, -1)])
    async def test_bad_page_bounds(self, db, shop, limit, offset):
        with pytest.raises(InvalidInputError):
            await OrderQueryService(db).admin(AdminOrderFilters(), ListParams(limit=limit, offset=offset))


class TestAdminFilters:
    """Test back office filters."""

    @pytest.mark.asyncio
    async def test_filter_by_status_and_people(self, db, shop, orders):
        query = OrderQueryService(db)
        params = ListParams(sort_by="id", sort_dir="asc")

        assert ids(await query.admin(AdminOrderFilters(status=OrderStatus.NEW), params)) == orders[:2]
        assert ids(await query.admin(AdminOrderFilters(manager_id=shop.other_manager.id), params)) == [orders[3]]
        assert ids(await query.admin(AdminOrderFilters(client_id=shop.other_client.id), params)) == [
            orders[2],
            orders[4],
        ]

    @pytest.mark.asyncio
    async def test_search_by_email_name_or_id(self, db, shop, orders):
        query = OrderQueryService(db)
        params = ListParams(sort_by="id", sort_dir="asc")

        assert ids(await query.admin(AdminOrderFilters(q="DAN@EXAMPLE"), params)) == [
            orders[0],
            orders[1],
            orders[3],
        ]
        assert ids(await query.admin(AdminOrderFilters(q="eva"), params)) == [orders[2], orders[4]]
        assert orders[4] in ids(await query.admin(AdminOrderFilters(q=str(orders[4])), params))

    @pytest.mark.asyncio
    async def test_search_wildcards_match_literally(self, db, factory, shop, order_data, orders):
        buyer = await factory.user(full_name="Vip Buyer", email="vip_buyer@example.com")
        order = await OrderService(db).create(buyer, order_data([(shop.amp, 1)]))
        order_id = order.id
        query = OrderQueryService(db)
        params = ListParams(sort_by="id", sort_dir="asc")

        for q in ("%", "\\", "__%"):
            assert (await query.admin(AdminOrderFilters(q=q), params))[1] == 0
        assert ids(await query.admin(AdminOrderFilters(q="_"), params)) == [order_id]
        assert ids(await query.admin(AdminOrderFilters(q="vip_b"), params)) == [order_id]

    @pytest.mark.asyncio
    async def test_date_range_is_inclusive(self, db, shop, orders):
        query = OrderQueryService(db)
        today = utcnow().date()

        in_range = await query.admin(AdminOrderFilters(date_from=today, date_to=today), ListParams())
        assert in_range[1] == 5

        before = await query.admin(AdminOrderFilters(date_to=today - timedelta(days=1)), ListParams())
        assert before[1] == 0

    @pytest.mark.asyncio
    async def test_hide_closed(self, db, shop, orders):
        _orders, total, _limit, _offset = await OrderQueryService(db).admin(
            AdminOrderFilters(), ListParams(hide_closed=True)
        )
        assert total == 4


class TestCounters:
    """Test facet counters."""

    @pytest.mark.asyncio
    async def test_counts_every_status(self, db, shop, orders):
        counters = await OrderQueryService(db).counters(AdminOrderFilters())

        assert counters.by_status == {
            "new": 2,
            "preparing": 1,
            "ready": 1,
            "delivering": 0,
            "finished": 0,
            "canceled": 1,
        }
        assert {(c.user_id, c.count) for c in counters.by_manager} == {
            (shop.manager.id, 1),
            (shop.other_manager.id, 1),
        }
        assert counters.by_courier == []

    @pytest.mark.asyncio
    async def test_facet_ignores_its_own_filter(self, db, shop, orders):
        counters = await OrderQueryService(db).counters(
            AdminOrderFilters(status=OrderStatus.NEW, manager_id=shop.manager.id)
        )

        # Status facet keeps the manager filter only
        assert counters.by_status["preparing"] == 1
        assert counters.by_status["new"] == 0
        # Manager facet keeps the status filter only: no new order has a manager
        assert counters.by_manager == []
