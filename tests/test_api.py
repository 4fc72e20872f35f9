import pytest


async def place(client, **overrides):
    body = {"customer_id": 1, "restaurant_id": 5, "total_price": 1200, "items": [10, 11]}
    body.update(overrides)
    return await client.post("/orders", json=body)


async def test_root_and_health(client):
    assert (await client.get("/")).status_code == 200

    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["database"] == "healthy"
    assert data["delivery_service"] == "healthy"


async def test_health_reports_degraded_ledger(client, ledger):
    ledger.available = False

    data = (await client.get("/health")).json()

    assert data["status"] == "degraded"
    assert data["delivery_service"] == "unhealthy"


class TestCreate:
    async def test_created(self, client):
        response = await place(client)

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["status"] == "pending"
        assert isinstance(data["order_id"], int)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"items": []},
            {"items": [0]},
            {"total_price": -1},
            {"status": "shipped"},
            {"status": "completed"},
            {"customer_id": None},
        ],
    )
    async def test_rejected_with_400(self, client, overrides):
        response = await place(client, **overrides)

        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_missing_field(self, client):
        response = await client.post("/orders", json={"customer_id": 1, "restaurant_id": 5, "items": [10]})

        assert response.status_code == 400
        assert "total_price" in response.json()["message"]


class TestRead:
    async def test_enriched_order(self, client):
        order_id = (await place(client)).json()["order_id"]

        response = await client.get(f"/orders/{order_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["restaurant"]["id"] == 5
        assert len(data["items"]) == 2
        assert data["progress"] == pytest.approx(14.29)
        assert data["delivery"] is None

    async def test_unknown_order(self, client):
        response = await client.get("/orders/404")

        assert response.status_code == 404
        assert response.json()["error"] == "Not Found"

    async def test_list_by_restaurant_and_customer(self, client):
        await place(client)
        await place(client, customer_id=7)

        by_restaurant = (await client.get("/orders", params={"restaurant_id": 5})).json()
        by_customer = (await client.get("/orders", params={"customer_id": 7})).json()

        assert by_restaurant["total"] == 2
        assert by_customer["total"] == 1
        assert by_customer["orders"][0]["customer"]["name"] == "Youssef"

    async def test_list_survives_malformed_restaurant(self, client, directory):
        await place(client)
        await place(client, customer_id=7)

        async def restaurant_as_list(_):
            return [{"id": 5}]

        directory.get_restaurant = restaurant_as_list

        response = await client.get("/orders", params={"restaurant_id": 5})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert all(o["restaurant"] is None for o in data["orders"])
        assert all(len(o["items"]) == 2 for o in data["orders"])

    async def test_list_limit_is_bounded(self, client):
        assert (await client.get("/orders", params={"limit": 1000})).status_code == 400


class TestTransition:
    async def test_assign_courier(self, client, ledger):
        order_id = (await place(client)).json()["order_id"]

        response = await client.put(f"/orders/{order_id}", json={"status": "waiting for pickup", "courier_id": 7})

        assert response.status_code == 200
        assert response.json()["order"]["status"] == "waiting_for_pickup"
        assert len(ledger.deliveries) == 1

        events = (await client.get(f"/orders/{order_id}/events")).json()
        assert [(e["event_type"], e["status"]) for e in events] == [("create_delivery", "done")]

    async def test_invalid_transition(self, client):
        order_id = (await place(client)).json()["order_id"]
        await client.put(f"/orders/{order_id}", json={"status": "completed"})

        response = await client.put(f"/orders/{order_id}", json={"status": "pending"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid Transition"
        assert body["details"]["current_status"] == "completed"

    async def test_unknown_order(self, client):
        response = await client.put("/orders/404", json={"status": "confirmed"})
        assert response.status_code == 404

    async def test_partial_failure(self, client, ledger):
        order_id = (await place(client)).json()["order_id"]
        ledger.available = False

        response = await client.put(f"/orders/{order_id}", json={"status": "waiting_for_pickup", "courier_id": 7})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Partial Failure"
        assert body["order_state_changed"] is True
        assert body["order"]["status"] == "waiting_for_pickup"
        assert body["downstream"]["service"] == "ledger"
        assert isinstance(body["event_id"], int)

        stored = (await client.get(f"/orders/{order_id}")).json()
        assert stored["status"] == "waiting_for_pickup"
        assert stored["delivery"] is None

        failed = (await client.get("/outbox/events", params={"status": "failed"})).json()
        assert [e["id"] for e in failed] == [body["event_id"]]

        ledger.available = True
        report = (await client.post("/outbox/reconcile")).json()
        assert report["succeeded"] == 1
        assert (await client.get(f"/orders/{order_id}")).json()["delivery"]["courier_id"] == 7


class TestDelete:
    async def test_soft_delete(self, client):
        order_id = (await place(client)).json()["order_id"]

        response = await client.delete(f"/orders/{order_id}")

        assert response.status_code == 200
        assert (await client.get(f"/orders/{order_id}")).status_code == 404

        audit = await client.get(f"/orders/{order_id}", params={"include_deleted": True})
        assert audit.status_code == 200
        assert audit.json()["deleted_at"] is not None

        assert (await client.get("/orders")).json()["total"] == 0

    async def test_delete_twice(self, client):
        order_id = (await place(client)).json()["order_id"]
        await client.delete(f"/orders/{order_id}")

        assert (await client.delete(f"/orders/{order_id}")).status_code == 404
