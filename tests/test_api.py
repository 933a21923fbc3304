"""Integration tests for the Order API endpoints via TestClient."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from order_service import workflow
from order_service.db import IdempotencyRecord, OrderRecord
from order_service.ledger import create_order_with_key
from order_service.main import create_app

ORDER_BODY = {
    "cart": [
        {
            "productId": "pizza",
            "qty": 1,
            "chosenConfiguration": {
                "priceConfiguration": {"Size": "Small", "Crust": "Thin"},
                "selectedToppings": [
                    {"toppingId": "cheese", "price": 50},
                    {"toppingId": "olives", "price": 50},
                ],
            },
        }
    ],
    "couponCode": "SAVE10",
    "tenantId": "1",
    "paymentMode": "card",
    "customerId": "cust-api-001",
    "comment": None,
    "address": "12 MG Road, Pune",
}


@pytest.fixture()
def client(settings, session_factory, payment_gateway, publisher, pizza_menu):
    app = create_app(
        settings=settings,
        session_factory=session_factory,
        payment_gateway=payment_gateway,
        publisher=publisher,
        configure_logging=False,
    )
    return TestClient(app)


def _rows(session_factory, model):
    with session_factory() as session:
        return session.query(model).count()


class TestCreateOrder:
    def test_create_card_order(self, client, payment_gateway):
        response = client.post("/orders", json=ORDER_BODY, headers={"Idempotency-Key": "api-key-1"})

        assert response.status_code == 201
        data = response.json()
        assert data["paymentUrl"] == "https://checkout.example.test/pay/api-key-1"
        assert data["paymentError"] is None
        assert data["order"]["total"] == 631
        assert data["order"]["discount"] == 50
        assert data["order"]["taxes"] == 81
        assert data["order"]["deliveryCharges"] == 100
        assert data["order"]["orderStatus"] == "received"
        assert data["order"]["paymentStatus"] == "pending"
        assert data["order"]["cart"][0]["productId"] == "pizza"
        assert payment_gateway.calls[0]["amount"] == 631

    def test_cash_order_has_no_payment_url(self, client):
        body = dict(ORDER_BODY, paymentMode="cash")

        response = client.post("/orders", json=body, headers={"Idempotency-Key": "api-key-1"})

        assert response.status_code == 201
        assert response.json()["paymentUrl"] is None

    def test_repeated_key_returns_same_order(self, client, session_factory):
        first = client.post("/orders", json=ORDER_BODY, headers={"Idempotency-Key": "api-key-1"})
        second = client.post(
            "/orders",
            json=dict(ORDER_BODY, customerId="someone-else"),
            headers={"Idempotency-Key": "api-key-1"},
        )

        assert second.status_code == 201
        assert second.json()["order"]["id"] == first.json()["order"]["id"]
        assert second.json()["order"]["customerId"] == "cust-api-001"
        assert _rows(session_factory, OrderRecord) == 1

    def test_missing_idempotency_key_is_rejected(self, client, session_factory, payment_gateway):
        response = client.post("/orders", json=ORDER_BODY)

        assert response.status_code == 400
        assert "Idempotency-Key" in response.json()["message"]
        assert _rows(session_factory, OrderRecord) == 0
        assert _rows(session_factory, IdempotencyRecord) == 0
        assert payment_gateway.calls == []

    def test_invalid_body_returns_field_errors(self, client, session_factory):
        body = dict(ORDER_BODY, cart=[dict(ORDER_BODY["cart"][0], qty=0)])

        response = client.post("/orders", json=body, headers={"Idempotency-Key": "api-key-1"})

        assert response.status_code == 400
        errors = response.json()["errors"]
        assert any(error["loc"][-1] == "qty" for error in errors)
        assert _rows(session_factory, OrderRecord) == 0

    def test_empty_cart_is_rejected(self, client):
        response = client.post("/orders", json=dict(ORDER_BODY, cart=[]), headers={"Idempotency-Key": "k"})

        assert response.status_code == 400

    def test_unknown_option_returns_400(self, client, session_factory):
        cart_item = dict(ORDER_BODY["cart"][0])
        cart_item["chosenConfiguration"] = {"priceConfiguration": {"Size": "Gigantic"}, "selectedToppings": []}

        response = client.post(
            "/orders", json=dict(ORDER_BODY, cart=[cart_item]), headers={"Idempotency-Key": "api-key-1"}
        )

        assert response.status_code == 400
        assert response.json()["option"] == "Gigantic"
        assert _rows(session_factory, OrderRecord) == 0

    def test_gateway_failure_still_returns_order(self, client, payment_gateway, session_factory):
        payment_gateway.fail = True

        response = client.post("/orders", json=ORDER_BODY, headers={"Idempotency-Key": "api-key-1"})

        assert response.status_code == 201
        assert response.json()["paymentUrl"] is None
        assert response.json()["paymentError"]
        assert _rows(session_factory, OrderRecord) == 1

    def test_failed_write_returns_500_and_stores_nothing(self, client, session_factory, payment_gateway, monkeypatch):
        def insert_then_fail(session, *args, **kwargs):
            create_order_with_key(session, *args, **kwargs)
            raise OperationalError("INSERT INTO idempotency_records", {}, Exception("disk I/O error"))

        monkeypatch.setattr(workflow, "create_order_with_key", insert_then_fail)

        response = client.post("/orders", json=ORDER_BODY, headers={"Idempotency-Key": "api-key-1"})

        assert response.status_code == 500
        assert response.json() == {"message": "Internal server error while storing order."}
        assert _rows(session_factory, OrderRecord) == 0
        assert _rows(session_factory, IdempotencyRecord) == 0
        assert payment_gateway.calls == []


class TestReadOrders:
    def test_get_order_without_cart(self, client):
        created = client.post("/orders", json=ORDER_BODY, headers={"Idempotency-Key": "api-key-1"}).json()

        response = client.get(f"/orders/{created['order']['id']}")

        assert response.status_code == 200
        assert response.json()["total"] == 631
        assert "cart" not in response.json()

    def test_get_unknown_order_returns_404(self, client):
        assert client.get("/orders/does-not-exist").status_code == 404

    def test_customer_orders(self, client):
        client.post("/orders", json=ORDER_BODY, headers={"Idempotency-Key": "api-key-1"})
        client.post("/orders", json=ORDER_BODY, headers={"Idempotency-Key": "api-key-2"})

        response = client.get("/customers/cust-api-001/orders")

        assert response.status_code == 200
        assert len(response.json()) == 2
        assert client.get("/customers/nobody/orders").json() == []

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "cacheListener": "disabled"}
