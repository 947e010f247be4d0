"""Tests for the order and menu endpoints."""

from fastapi.testclient import TestClient


def create_order(client: TestClient, items=None, **extra):
    payload = {"items": items or {"1": 2, "2": 1}, "cashier_name": "ana", **extra}
    response = client.post("/api/v1/orders/", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestCreateOrder:
    def test_create_order(self, client: TestClient):
        data = create_order(client, table_number=7)
        assert data["id"] == 1
        assert data["status"] == "pending"
        assert data["order_type"] == "dine-in"
        assert float(data["total"]) == 380.0
        assert data["items"] == {"1": 2, "2": 1}
        assert data["table_number"] == 7

    def test_take_out_order(self, client: TestClient):
        data = create_order(client, items={"3": 1}, order_type="take-out", customer_name="Liza")
        assert data["order_type"] == "take-out"
        assert data["customer_name"] == "Liza"

    def test_empty_cart(self, client: TestClient):
        response = client.post("/api/v1/orders/", json={"items": {}, "cashier_name": "ana"})
        assert response.status_code == 422
        assert response.json()["error"] == "InvalidCartError"

    def test_unknown_item(self, client: TestClient):
        response = client.post("/api/v1/orders/", json={"items": {"99": 1}, "cashier_name": "ana"})
        assert response.status_code == 422
        assert response.json()["unknown_item_ids"] == [99]

    def test_missing_cashier(self, client: TestClient):
        response = client.post("/api/v1/orders/", json={"items": {"1": 1}})
        assert response.status_code == 422


class TestLifecycleEndpoints:
    def test_advance_through_chain(self, client: TestClient):
        order = create_order(client)
        statuses = []
        for _ in range(4):
            response = client.post(f"/api/v1/orders/{order['id']}/advance")
            assert response.status_code == 200
            statuses.append(response.json()["status"])
        assert statuses == ["preparing", "ready", "served", "completed"]

        response = client.post(f"/api/v1/orders/{order['id']}/advance")
        assert response.status_code == 409

    def test_skip_stage_rejected(self, client: TestClient):
        order = create_order(client)
        response = client.post(f"/api/v1/orders/{order['id']}/status", json={"status": "ready"})
        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "InvalidTransitionError"
        assert (body["source"], body["target"]) == ("pending", "ready")

        assert client.get(f"/api/v1/orders/{order['id']}").json()["status"] == "pending"

    def test_returned_version_matches_stored(self, client: TestClient):
        order = create_order(client)
        advanced = client.post(f"/api/v1/orders/{order['id']}/advance").json()
        stored = client.get(f"/api/v1/orders/{order['id']}").json()
        assert advanced["version"] == stored["version"] == order["version"] + 1

    def test_status_update(self, client: TestClient):
        order = create_order(client)
        response = client.post(f"/api/v1/orders/{order['id']}/status", json={"status": "preparing"})
        assert response.status_code == 200
        assert response.json()["status"] == "preparing"

    def test_cancel_requires_reason(self, client: TestClient):
        order = create_order(client)
        response = client.post(f"/api/v1/orders/{order['id']}/cancel", json={"reason": "", "cancelled_by": "mgr"})
        assert response.status_code == 422
        assert response.json()["error"] == "EmptyReasonError"

        response = client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "Customer left", "cancelled_by": "mgr"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "cancelled"
        assert data["cancellation_reason"] == "Customer left"
        assert data["cancelled_by"] == "mgr"

    def test_cancel_completed_rejected(self, client: TestClient):
        order = create_order(client)
        for _ in range(4):
            client.post(f"/api/v1/orders/{order['id']}/advance")
        response = client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "Too late", "cancelled_by": "mgr"},
        )
        assert response.status_code == 409

    def test_unknown_order(self, client: TestClient):
        assert client.get("/api/v1/orders/999").status_code == 404
        assert client.post("/api/v1/orders/999/advance").status_code == 404
        response = client.post("/api/v1/orders/999/status", json={"status": "preparing"})
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"


class TestOrderQueries:
    def test_queue_counts_and_history(self, client: TestClient):
        first = create_order(client)
        second = create_order(client, items={"4": 2})
        third = create_order(client, items={"3": 1})
        for _ in range(4):
            client.post(f"/api/v1/orders/{second['id']}/advance")
        client.post(f"/api/v1/orders/{third['id']}/cancel", json={"reason": "Duplicate", "cancelled_by": "mgr"})

        queue = client.get("/api/v1/orders/queue").json()
        assert [o["id"] for o in queue] == [first["id"]]

        counts = client.get("/api/v1/orders/counts").json()
        assert counts["counts"]["pending"] == 1
        assert counts["counts"]["completed"] == 1
        assert counts["counts"]["cancelled"] == 1
        assert counts["active"] == 1
        assert counts["realized"] == 1

        history = client.get("/api/v1/orders/").json()
        assert history["total"] == 3
        assert [o["id"] for o in history["items"]] == [third["id"], second["id"], first["id"]]

        ascending = client.get("/api/v1/orders/", params={"sort": "asc", "limit": 2}).json()
        assert [o["id"] for o in ascending["items"]] == [first["id"], second["id"]]
        assert ascending["total"] == 3

    def test_filter_by_status(self, client: TestClient):
        create_order(client)
        other = create_order(client)
        client.post(f"/api/v1/orders/{other['id']}/advance")

        response = client.get("/api/v1/orders/", params={"status": ["preparing", "ready"]})
        assert response.status_code == 200
        assert [o["id"] for o in response.json()["items"]] == [other["id"]]

    def test_inverted_date_filter(self, client: TestClient):
        response = client.get(
            "/api/v1/orders/",
            params={"start": "2026-03-11T00:00:00Z", "end": "2026-03-10T00:00:00Z"},
        )
        assert response.status_code == 422


class TestMenuItems:
    def test_list_seeded_menu(self, client: TestClient):
        items = client.get("/api/v1/menu-items/").json()
        assert [i["name"] for i in items] == ["Chicken Adobo", "Iced Tea", "Halo-Halo", "Garlic Rice"]

    def test_price_change_keeps_order_total(self, client: TestClient):
        order = create_order(client)
        response = client.patch("/api/v1/menu-items/1", json={"price": "175"})
        assert response.status_code == 200
        assert float(response.json()["price"]) == 175.0

        stored = client.get(f"/api/v1/orders/{order['id']}").json()
        assert float(stored["total"]) == 380.0

        new_order = create_order(client)
        assert float(new_order["total"]) == 430.0

    def test_null_for_required_field_rejected(self, client: TestClient):
        for body in ({"name": None}, {"price": None}, {"available": None}):
            response = client.patch("/api/v1/menu-items/1", json=body)
            assert response.status_code == 422, body

        assert client.get("/api/v1/menu-items/").status_code == 200
        assert float(create_order(client)["total"]) == 380.0

    def test_cost_can_be_cleared(self, client: TestClient):
        response = client.patch("/api/v1/menu-items/1", json={"cost": None})
        assert response.status_code == 200
        assert response.json()["cost"] is None
        assert response.json()["name"] == "Chicken Adobo"

    def test_update_unknown_item(self, client: TestClient):
        response = client.patch("/api/v1/menu-items/99", json={"price": "10"})
        assert response.status_code == 404

    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
