"""
Integration tests for the order API
"""

import uuid
from datetime import datetime, timedelta

from restaurant_os.models import OrderStatus
from restaurant_os.services.order_status import transition_order


def pickup_payload(restaurant, item, **overrides) -> dict:
    payload = {
        "restaurant_id": str(restaurant.id),
        "order_type": "PICKUP",
        "payment_method": "STRIPE",
        "pickup_time": (datetime.utcnow() + timedelta(minutes=30)).isoformat(),
        "items": [{"menu_item_id": str(item.id), "quantity": 2}],
        "tip_amount": "1.00",
    }
    payload.update(overrides)
    return payload


class TestCreateOrderEndpoint:

    async def test_customer_places_order(self, client, restaurant, burger, customer, customer_headers):
        response = await client.post("/api/v1/orders", json=pickup_payload(restaurant, burger), headers=customer_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "PENDING"
        assert body["data"]["payment_status"] == "PENDING"
        assert body["data"]["customer_id"] == str(customer.id)
        assert body["data"]["order_number"].startswith("ORD-")
        # 25.00 + 2.50 tax + 2.00 service + 1.00 tip
        assert body["data"]["total_amount"] == "30.50"
        assert body["data"]["history"][0]["status"] == "PENDING"

    async def test_customization_price_comes_from_menu(self, client, restaurant, burger, burger_extras, customer_headers):
        cheese_id = str(burger_extras.options[0].id)
        items = [{"menu_item_id": str(burger.id), "quantity": 2, "customizations": [{"option_id": cheese_id, "price": "0.00"}]}]

        response = await client.post(
            "/api/v1/orders", json=pickup_payload(restaurant, burger, items=items), headers=customer_headers
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["items"][0]["price"] == "14.00"
        # 28.00 + 2.80 tax + 2.24 service + 1.00 tip
        assert data["total_amount"] == "34.04"

    async def test_validation_error_shape(self, client, restaurant, burger, customer_headers):
        payload = pickup_payload(restaurant, burger, pickup_time=None)

        response = await client.post("/api/v1/orders", json=payload, headers=customer_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Validation failed"
        assert body["details"] == [{"field": "pickup_time", "message": "Pickup time is required for pickup orders"}]

    async def test_schema_error_uses_same_shape(self, client, restaurant, burger, customer_headers):
        payload = pickup_payload(restaurant, burger, items=[{"menu_item_id": str(burger.id), "quantity": 0}])

        response = await client.post("/api/v1/orders", json=payload, headers=customer_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["details"][0]["field"] == "items.0.quantity"

    async def test_requires_authentication(self, client, restaurant, burger):
        response = await client.post(
            "/api/v1/orders",
            json=pickup_payload(restaurant, burger),
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401

    async def test_staff_cannot_order_for_other_restaurant(self, client, restaurant, burger, auth_headers):
        headers = auth_headers(str(uuid.uuid4()), "WAITER", restaurant_id=uuid.uuid4())

        response = await client.post("/api/v1/orders", json=pickup_payload(restaurant, burger), headers=headers)

        assert response.status_code == 403


class TestReadOrder:

    async def test_owner_reads_order_and_history(self, client, make_order, customer_headers):
        order = await make_order()

        response = await client.get(f"/api/v1/orders/{order.id}", headers=customer_headers)
        history = await client.get(f"/api/v1/orders/{order.id}/history", headers=customer_headers)

        assert response.status_code == 200
        assert response.json()["data"]["id"] == str(order.id)
        assert len(response.json()["data"]["items"]) == 1
        assert history.status_code == 200
        assert [h["status"] for h in history.json()["data"]] == ["PENDING"]

    async def test_other_customer_is_forbidden(self, client, make_order, auth_headers):
        order = await make_order()

        response = await client.get(f"/api/v1/orders/{order.id}", headers=auth_headers(str(uuid.uuid4()), "CUSTOMER"))

        assert response.status_code == 403

    async def test_staff_reads_order(self, client, make_order, staff_headers):
        order = await make_order()
        response = await client.get(f"/api/v1/orders/{order.id}", headers=staff_headers)
        assert response.status_code == 200

    async def test_missing_order(self, client, staff_headers):
        response = await client.get(f"/api/v1/orders/{uuid.uuid4()}", headers=staff_headers)

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Order not found"}


class TestUpdateStatus:

    async def test_staff_moves_order_forward(self, client, make_order, staff_headers):
        order = await make_order()

        response = await client.patch(
            f"/api/v1/orders/{order.id}", json={"status": "ACCEPTED", "note": "Confirmed by phone"}, headers=staff_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Order status updated"
        assert body["data"]["status"] == "ACCEPTED"
        assert body["data"]["history"][-1]["note"] == "Confirmed by phone"

    async def test_customer_cancels(self, client, make_order, customer, customer_headers):
        order = await make_order()

        response = await client.patch(f"/api/v1/orders/{order.id}", json={"status": "CANCELLED"}, headers=customer_headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Order cancelled successfully"
        assert response.json()["data"]["history"][-1]["note"] == "Cancelled by customer"
        assert response.json()["data"]["history"][-1]["created_by"] == str(customer.id)

    async def test_customer_cannot_cancel_preparing_order(self, client, session, make_order, staff_actor, customer_headers):
        order = await make_order()
        await transition_order(session, order.id, OrderStatus.PREPARING, staff_actor)

        response = await client.patch(f"/api/v1/orders/{order.id}", json={"status": "CANCELLED"}, headers=customer_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "Order cannot be cancelled. It is already being prepared or completed."

    async def test_customer_cannot_advance_status(self, client, make_order, customer_headers):
        order = await make_order()

        response = await client.patch(f"/api/v1/orders/{order.id}", json={"status": "READY"}, headers=customer_headers)

        assert response.status_code == 403
        assert response.json()["error"] == "Forbidden: Only staff can update order status"

    async def test_unknown_status_value(self, client, make_order, staff_headers):
        order = await make_order()

        response = await client.patch(f"/api/v1/orders/{order.id}", json={"status": "EATEN"}, headers=staff_headers)

        assert response.status_code == 400
