"""HTTP tests for the order and trade-in endpoints."""

from decimal import Decimal

import pytest


@pytest.fixture
def checkout(shop):
    def build(quantity=1, trade_in=()):
        return {
            "items": [{"product_id": shop.guitar.id, "quantity": quantity}],
            "trade_in_items": [
                {"product_id": product.id, "condition_code": code, "quantity": qty}
                for product, qty, code in trade_in
            ],
            "delivery": {"phone": "+15550100", "address": "1 Music Row", "contact_name": "Dan"},
        }

    return build


@pytest.fixture
async def placed(client, shop, auth_headers, checkout) -> int:
    response = await client.post("/api/orders", json=checkout(), headers=auth_headers(shop.client))
    assert response.status_code == 201
    return response.json()["data"]["id"]


class TestEnvelope:
    """Test the success and failure envelopes."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"success": True, "data": {"status": "healthy"}}

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/orders/my")
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_invalid_token(self, client):
        response = await client.get("/api/orders/my", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_wrong_role(self, client, shop, auth_headers):
        response = await client.get("/api/orders/manager/queue", headers=auth_headers(shop.client))
        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_validation_error(self, client, shop, auth_headers, checkout):
        response = await client.post(
            "/api/orders", json=checkout(quantity=0), headers=auth_headers(shop.client)
        )
        assert response.status_code == 400
        body = response.json()
        assert body == {
            "success": False,
            "message": "Invalid request",
            "code": "INVALID_INPUT",
            "details": body["details"],
        }
        assert "quantity" in body["details"]


class TestClientFlow:
    """Test checkout and the client's own views."""

    @pytest.mark.asyncio
    async def test_create_order(self, client, shop, auth_headers, checkout):
        response = await client.post(
            "/api/orders",
            json=checkout(trade_in=[(shop.amp, 2, "good")]),
            headers=auth_headers(shop.client),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        order = body["data"]
        assert order["status"] == "new"
        assert order["status_id"] == 1
        assert order["client_name"] == "Dan Client"
        assert Decimal(order["total_items"]) == Decimal("1000")
        assert Decimal(order["total_discount"]) == Decimal("300")
        assert Decimal(order["total"]) == Decimal("700")
        assert order["items"][0]["product_name"] == "Stratocaster"
        assert order["comment_internal"] is None

    @pytest.mark.asyncio
    async def test_only_clients_can_order(self, client, shop, auth_headers, checkout):
        response = await client.post("/api/orders", json=checkout(), headers=auth_headers(shop.manager))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_my_orders_page(self, client, shop, auth_headers, placed):
        response = await client.get(
            "/api/orders/my", params={"hideClosed": "true", "limit": 5}, headers=auth_headers(shop.client)
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [item["id"] for item in data["items"]] == [placed]
        assert data["page"] == {"limit": 5, "offset": 0, "total": 1}

    @pytest.mark.asyncio
    async def test_bad_sort_field(self, client, shop, auth_headers):
        response = await client.get(
            "/api/orders/my", params={"sortBy": "secret"}, headers=auth_headers(shop.client)
        )
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_foreign_order_is_not_found(self, client, shop, auth_headers, placed):
        response = await client.get(f"/api/orders/{placed}", headers=auth_headers(shop.other_client))
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_client_cancels_via_status_patch(self, client, shop, auth_headers, placed):
        headers = auth_headers(shop.client)

        rejected = await client.patch(f"/api/orders/{placed}/status", json={"status": "ready"}, headers=headers)
        assert rejected.status_code == 400

        response = await client.patch(
            f"/api/orders/{placed}/status", json={"status": "canceled"}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "canceled"


class TestStaffFlow:
    """Test the fulfillment endpoints."""

    @pytest.mark.asyncio
    async def test_double_take_conflicts(self, client, shop, auth_headers, placed):
        first = await client.post(f"/api/orders/{placed}/manager/take", headers=auth_headers(shop.manager))
        assert first.status_code == 200
        assert first.json()["data"]["manager_name"] == "Mark Manager"

        second = await client.post(
            f"/api/orders/{placed}/manager/take", headers=auth_headers(shop.other_manager)
        )
        assert second.status_code == 409
        assert second.json()["code"] == "CONFLICT"

    @pytest.mark.asyncio
    async def test_full_lifecycle_and_history(self, client, shop, auth_headers, placed):
        steps = [
            (f"/api/orders/{placed}/manager/take", shop.manager),
            (f"/api/orders/{placed}/manager/mark-ready", shop.manager),
            (f"/api/orders/{placed}/courier/take", shop.courier),
            (f"/api/orders/{placed}/courier/finish", shop.courier),
        ]
        for path, user in steps:
            response = await client.post(path, headers=auth_headers(user))
            assert response.status_code == 200, response.text

        response = await client.get(f"/api/orders/{placed}/history", headers=auth_headers(shop.client))
        assert response.status_code == 200
        entries = response.json()["data"]
        assert [e["new_status"] for e in entries] == ["new", "preparing", "ready", "delivering", "finished"]
        assert entries[-1]["changed_by_name"] == "Carl Courier"

    @pytest.mark.asyncio
    async def test_manager_queue(self, client, shop, auth_headers, placed):
        response = await client.get("/api/orders/manager/queue", headers=auth_headers(shop.manager))
        assert [item["id"] for item in response.json()["data"]["items"]] == [placed]

    @pytest.mark.asyncio
    async def test_manager_cancel_requires_reason(self, client, shop, auth_headers, placed):
        response = await client.post(
            f"/api/orders/{placed}/manager/cancel", json={}, headers=auth_headers(shop.manager)
        )
        assert response.status_code == 400


class TestAdminApi:
    """Test the back office endpoints."""

    @pytest.mark.asyncio
    async def test_list_and_status_filter(self, client, shop, auth_headers, placed):
        headers = auth_headers(shop.admin)

        response = await client.get("/api/orders/admin", params={"statusId": 1}, headers=headers)
        assert response.status_code == 200
        assert [item["id"] for item in response.json()["data"]["items"]] == [placed]

        response = await client.get("/api/orders/admin", params={"status": "finished"}, headers=headers)
        assert response.json()["data"]["page"]["total"] == 0

        response = await client.get("/api/orders/admin", params={"statusId": 42}, headers=headers)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_admin_only(self, client, shop, auth_headers):
        response = await client.get("/api/orders/admin", headers=auth_headers(shop.manager))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_counters_and_statuses(self, client, shop, auth_headers, placed):
        headers = auth_headers(shop.admin)

        counters = (await client.get("/api/orders/admin/counters", headers=headers)).json()["data"]
        assert counters["by_status"]["new"] == 1
        assert counters["by_status"]["finished"] == 0

        statuses = (await client.get("/api/orders/admin/statuses", headers=headers)).json()["data"]
        assert statuses[0] == {"id": 1, "name": "new"}
        assert [s["name"] for s in statuses][-1] == "canceled"

    @pytest.mark.asyncio
    async def test_staff_picker(self, client, shop, auth_headers):
        response = await client.get("/api/orders/admin/users/courier", headers=auth_headers(shop.admin))
        assert [u["full_name"] for u in response.json()["data"]] == ["Carl Courier", "Cleo Courier"]

    @pytest.mark.asyncio
    async def test_assign_accepts_camel_case(self, client, shop, auth_headers, placed):
        response = await client.post(
            f"/api/orders/admin/{placed}/assign",
            json={"role": "manager", "userId": shop.manager.id},
            headers=auth_headers(shop.admin),
        )
        assert response.status_code == 200
        assert response.json()["data"]["manager_id"] == shop.manager.id

    @pytest.mark.asyncio
    async def test_override_and_internal_comment(self, client, shop, auth_headers, placed):
        headers = auth_headers(shop.admin)

        response = await client.patch(
            f"/api/orders/admin/{placed}/comment-internal", json={"comment": "VIP"}, headers=headers
        )
        assert response.json()["data"]["comment_internal"] == "VIP"

        response = await client.post(
            f"/api/orders/admin/{placed}/status",
            json={"status": "canceled", "note": "Duplicate"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["canceled_reason"] == "Duplicate"

        response = await client.post(
            f"/api/orders/admin/{placed}/status", json={"status": "new"}, headers=headers
        )
        assert response.status_code == 409

        # Internal comment stays hidden from the client
        response = await client.get(f"/api/orders/{placed}", headers=auth_headers(shop.client))
        assert response.json()["data"]["comment_internal"] is None


class TestTradeInApi:
    @pytest.mark.asyncio
    async def test_quote(self, client, shop, auth_headers):
        response = await client.post(
            "/api/trade-in/quote",
            json={
                "items": [{"product_id": shop.guitar.id, "condition_code": "good", "quantity": 2}],
                "items_total": "400",
            },
            headers=auth_headers(shop.client),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert Decimal(data["raw_discount"]) == Decimal("300")
        assert Decimal(data["discount"]) == Decimal("200")

    @pytest.mark.asyncio
    async def test_catalog_admin(self, client, shop, auth_headers):
        response = await client.post(
            "/api/trade-in/catalog",
            json={"product_id": shop.amp.id, "reference_price": "500", "base_discount_amount": "250", "activate": True},
            headers=auth_headers(shop.admin),
        )
        assert response.status_code == 201
        assert response.json()["data"]["is_active"] is True

        catalog = (await client.get("/api/trade-in/catalog", headers=auth_headers(shop.client))).json()["data"]
        amp_entries = [e for e in catalog if e["product_id"] == shop.amp.id]
        assert len(amp_entries) == 1
        assert Decimal(amp_entries[0]["base_discount_amount"]) == Decimal("250")

    @pytest.mark.asyncio
    async def test_catalog_write_is_admin_only(self, client, shop, auth_headers):
        response = await client.post(
            f"/api/trade-in/catalog/{shop.amp_entry.id}/activate", headers=auth_headers(shop.client)
        )
        assert response.status_code == 403
