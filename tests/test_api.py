"""HTTP surface: routing, identity headers and error mapping."""

import pytest
from fastapi.testclient import TestClient

from storefront.api import create_app
from storefront.api.deps import get_payment_gateway, get_rate_limiter
from storefront.data.database import SessionLocal
from storefront.domain.errors import PaymentFailed
from storefront.domain.statuses import CartStatus
from storefront.repos.cart_repo import CartRepo
from storefront.services.payment_gateway import PaymentGateway

from conftest import FakeGateway


class AllowAll:
    def allow(self, scope, identity):
        return True


class DenyAll:
    def allow(self, scope, identity):
        return False


@pytest.fixture
def app():
    app = create_app()
    app.dependency_overrides[get_rate_limiter] = lambda: AllowAll()
    app.dependency_overrides[get_payment_gateway] = lambda: FakeGateway()
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


def headers(user_id):
    return {"X-User-Id": str(user_id)}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_identity_is_required(client, shop):
    assert client.get("/cart").status_code == 401


def test_add_view_remove_flow(client, shop, stock):
    added = client.post("/cart/items", json={"variant_id": shop.variant_id, "quantity": 2}, headers=headers(shop.alice))
    assert added.status_code == 200
    assert added.json()["available_quantity"] == 3

    view = client.get("/cart", headers=headers(shop.alice)).json()
    assert view["cart"]["id"] == added.json()["cart_id"]
    assert view["items"][0]["variant"]["sku"] == "HOOD-BLU"

    removed = client.delete(f"/cart/items/{added.json()['item_id']}", headers=headers(shop.alice))
    assert removed.status_code == 200
    assert stock(shop.variant_id) == 5


def test_empty_cart_view(client, shop):
    body = client.get("/cart", headers=headers(shop.alice)).json()

    assert body["cart"] is None
    assert body["items"] == []


def test_insufficient_stock_is_a_bad_request(client, shop):
    resp = client.post("/cart/items", json={"variant_id": shop.variant_id, "quantity": 6}, headers=headers(shop.alice))

    assert resp.status_code == 400
    assert "Only 5 items left" in resp.json()["detail"]


def test_quantity_must_be_positive(client, shop):
    resp = client.post("/cart/items", json={"variant_id": shop.variant_id, "quantity": 0}, headers=headers(shop.alice))

    assert resp.status_code == 422


def test_removing_foreign_item_is_forbidden(client, shop):
    added = client.post("/cart/items", json={"variant_id": shop.variant_id, "quantity": 1}, headers=headers(shop.alice))

    resp = client.delete(f"/cart/items/{added.json()['item_id']}", headers=headers(shop.bob))

    assert resp.status_code == 403


def test_checkout_summary(client, shop):
    client.post("/cart/items", json={"variant_id": shop.variant_id, "quantity": 2}, headers=headers(shop.alice))

    body = client.get("/cart/checkout", headers=headers(shop.alice)).json()

    assert body["item_count"] == 1
    assert body["total_amount"] == "80.00"


def test_checkout_and_order_history(client, shop):
    client.post("/cart/items", json={"variant_id": shop.variant_id, "quantity": 1}, headers=headers(shop.alice))

    resp = client.post(
        "/orders",
        json={"payment_method_id": "pm_card_visa", "address_id": shop.alice_address},
        headers=headers(shop.alice),
    )
    assert resp.status_code == 201
    order_id = resp.json()["order_id"]

    history = client.get("/orders", headers=headers(shop.alice)).json()["orders"]
    assert [o["id"] for o in history] == [order_id]
    assert history[0]["payment_status"] == "paid"
    assert history[0]["items"][0]["variant_sku"] == "HOOD-BLU"

    assert client.get(f"/orders/{order_id}", headers=headers(shop.alice)).status_code == 200
    assert client.get(f"/orders/{order_id}", headers=headers(shop.bob)).status_code == 403
    assert client.get("/orders/999", headers=headers(shop.alice)).status_code == 404


def test_declined_payment_is_402(app, client, shop):
    app.dependency_overrides[get_payment_gateway] = lambda: FakeGateway(error=PaymentFailed("card declined"))
    client.post("/cart/items", json={"variant_id": shop.variant_id, "quantity": 1}, headers=headers(shop.alice))

    resp = client.post(
        "/orders",
        json={"payment_method_id": "pm_card_declined", "address_id": shop.alice_address},
        headers=headers(shop.alice),
    )

    assert resp.status_code == 402
    assert client.get("/cart", headers=headers(shop.alice)).json()["cart"]["status"] == "active"


def test_checkout_without_cart_is_404(client, shop):
    resp = client.post(
        "/orders",
        json={"payment_method_id": "pm_card_visa", "address_id": shop.alice_address},
        headers=headers(shop.alice),
    )

    assert resp.status_code == 404


def test_rate_limited_checkout(app, client, shop):
    app.dependency_overrides[get_rate_limiter] = lambda: DenyAll()

    resp = client.post(
        "/orders",
        json={"payment_method_id": "pm_card_visa", "address_id": shop.alice_address},
        headers=headers(shop.alice),
    )

    assert resp.status_code == 429


def test_webhook_with_bad_signature_is_400(app, client):
    app.dependency_overrides[get_payment_gateway] = lambda: PaymentGateway(api_key="sk_test", webhook_secret="whsec_test")

    resp = client.post("/payments/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=deadbeef"})

    assert resp.status_code == 400


def test_webhook_lost_write_is_acknowledged(app, client, shop):
    from test_reconciler import event_payload, sign

    app.dependency_overrides[get_payment_gateway] = lambda: PaymentGateway(api_key="sk_test", webhook_secret="whsec_test")
    payload = event_payload("payment_intent.succeeded", "pi_ghost")

    resp = client.post("/payments/webhook", content=payload, headers={"Stripe-Signature": sign(payload)})

    assert resp.status_code == 200
    assert resp.json() == {"received": True, "outcome": "lost_write"}


def test_removing_from_cart_under_checkout_is_409(client, shop):
    added = client.post("/cart/items", json={"variant_id": shop.variant_id, "quantity": 1}, headers=headers(shop.alice))
    with SessionLocal() as session:
        repo = CartRepo(session)
        repo.transition(added.json()["cart_id"], CartStatus.ACTIVE, CartStatus.PROCESSING)
        repo.commit()

    resp = client.delete(f"/cart/items/{added.json()['item_id']}", headers=headers(shop.alice))

    assert resp.status_code == 409
