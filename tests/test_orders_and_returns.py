import json

import pytest
from sqlalchemy import select

from storefront.models import Address, CartItem, Order
from storefront.services.settings_service import SettingsService
from tests.conftest import VALID_SIGNATURE

ORDERS_URL = "/api/v1/orders"
RETURNS_URL = "/api/v1/returns"
PAYMENTS_WEBHOOK_URL = "/api/v1/webhooks/payments"

SHIPPING_ADDRESS = {
    "street": "10 Downing Lane",
    "city": "Portland",
    "state": "OR",
    "zip_code": "97201",
    "country": "US",
}


def completed_event(session_id, user, amount_total, address=SHIPPING_ADDRESS):
    metadata = {"userId": user.auth_subject}
    if address is not None:
        metadata["shippingAddress"] = json.dumps(address)
    return {
        "id": f"evt_{session_id}",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": session_id,
            "payment_intent": f"pi_{session_id}",
            "amount_total": amount_total,
            "customer_email": user.email,
            "metadata": metadata,
        }},
    }


def post_event(client, event, signature=VALID_SIGNATURE):
    return client.post(
        PAYMENTS_WEBHOOK_URL,
        data=json.dumps(event),
        content_type="application/json",
        headers={"Stripe-Signature": signature},
    )


@pytest.fixture
def priced_store(db_session):
    settings = SettingsService(db_session)
    settings.update("tax", {"default_rate": 10})
    settings.update("shipping", {"zones": [
        {"id": "us", "name": "United States", "regions": ["US"], "base_rate": 500, "delivery_time": "3-5 days"},
    ]})
    return settings


@pytest.fixture
def filled_cart(db_session, customer, make_product):
    product = make_product("Backpack", base_price=2000, variants=[
        {"sku": "BAG-GREEN", "color_id": "green", "price_adjustment": 0},
    ])
    variant = product.variants[0]
    db_session.add(CartItem(user_id=customer.id, product_id=product.id, variant_id=variant.id, quantity=2))
    db_session.commit()
    return product


class TestCheckout:

    def test_session_carries_items_shipping_and_tax(
        self, client, customer, filled_cart, priced_store, payment_gateway, auth_headers
    ):
        # Act
        response = client.post(
            f"{ORDERS_URL}/checkout", json={"shipping_address": SHIPPING_ADDRESS}, headers=auth_headers(customer)
        )

        # Assert
        assert response.status_code == 201
        assert response.get_json()["data"] == {"session_id": "cs_test_1", "url": "https://checkout.test/cs_test_1"}

        session = payment_gateway.sessions[0]
        names = [item["price_data"]["product_data"]["name"] for item in session["line_items"]]
        amounts = [item["price_data"]["unit_amount"] * item["quantity"] for item in session["line_items"]]
        assert names == ["Backpack (green)", "Shipping (United States)", "Tax (10%)"]
        assert amounts == [4000, 500, 400]
        assert session["metadata"]["userId"] == customer.auth_subject
        assert json.loads(session["metadata"]["shippingAddress"]) == SHIPPING_ADDRESS
        assert session["customer_email"] == customer.email
        assert session["success_url"] == "http://shop.test/checkout/success?session_id={CHECKOUT_SESSION_ID}"
        assert session["cancel_url"] == "http://shop.test/checkout"

    def test_empty_cart_is_rejected(self, client, customer, auth_headers):
        response = client.post(
            f"{ORDERS_URL}/checkout", json={"shipping_address": SHIPPING_ADDRESS}, headers=auth_headers(customer)
        )

        assert response.status_code == 400
        assert response.get_json()["error"]["message"] == "Cart is empty"

    def test_disabled_card_payments(self, client, db_session, customer, filled_cart, auth_headers):
        SettingsService(db_session).update("payment", {"stripe_enabled": False})

        response = client.post(
            f"{ORDERS_URL}/checkout", json={"shipping_address": SHIPPING_ADDRESS}, headers=auth_headers(customer)
        )

        assert response.status_code == 422

    def test_anonymous_checkout_is_401(self, client):
        response = client.post(f"{ORDERS_URL}/checkout", json={"shipping_address": SHIPPING_ADDRESS})

        assert response.status_code == 401


class TestPaymentWebhook:

    def test_completed_checkout_creates_order_and_empties_cart(
        self, client, db_session, customer, filled_cart
    ):
        """Order number is the session id; shipping absorbs what the item prices do not cover"""
        # Act
        response = post_event(client, completed_event("cs_test_42", customer, amount_total=4900))

        # Assert
        data = response.get_json()["data"]
        assert data["handled"] is True

        db_session.expire_all()
        order = db_session.get(Order, data["order_id"])
        assert order.order_number == "cs_test_42"
        assert order.status == "pending"
        assert (order.subtotal, order.tax, order.shipping, order.total) == (4000, 0, 900, 4900)
        assert order.payment_intent_id == "pi_cs_test_42"
        assert [(item.sku, item.quantity, item.price) for item in order.items] == [("BAG-GREEN", 2, 2000)]
        assert order.shipping_address.label == "Order Address"
        assert order.shipping_address.city == "Portland"
        assert db_session.scalars(select(CartItem).where(CartItem.user_id == customer.id)).all() == []

    def test_redelivery_is_idempotent(self, client, db_session, customer, filled_cart):
        event = completed_event("cs_test_7", customer, amount_total=4000)

        first = post_event(client, event).get_json()["data"]
        second = post_event(client, event).get_json()["data"]

        assert first["order_id"] == second["order_id"]
        db_session.expire_all()
        assert len(db_session.scalars(select(Order).where(Order.user_id == customer.id)).all()) == 1

    def test_unparseable_address_still_creates_order(self, client, db_session, customer, filled_cart):
        event = completed_event("cs_test_8", customer, amount_total=4000, address=None)
        event["data"]["object"]["metadata"]["shippingAddress"] = "{not json"

        data = post_event(client, event).get_json()["data"]

        db_session.expire_all()
        assert db_session.get(Order, data["order_id"]).shipping_address_id is None
        assert db_session.scalars(select(Address).where(Address.user_id == customer.id)).all() == []

    def test_empty_cart_is_acknowledged_without_order(self, client, customer):
        response = post_event(client, completed_event("cs_test_9", customer, amount_total=1000))

        assert response.status_code == 200
        assert response.get_json()["data"]["order_id"] is None

    def test_other_events_are_ignored(self, client):
        response = post_event(client, {"id": "evt_1", "type": "payment_intent.created", "data": {"object": {}}})

        assert response.get_json()["data"] == {"received": True, "handled": False}

    def test_bad_signature_is_400(self, client, customer):
        response = post_event(client, completed_event("cs_test_1", customer, 100), signature="forged")

        assert response.status_code == 400

    def test_missing_signature_is_400(self, client):
        response = client.post(PAYMENTS_WEBHOOK_URL, data="{}", content_type="application/json")

        assert response.status_code == 400

    def test_malformed_session_is_400(self, client):
        event = {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {"amount_total": 5}}}

        response = post_event(client, event)

        assert response.status_code == 400


class TestOrders:

    def test_customer_lists_own_orders(self, client, customer, make_user, make_product, make_order, auth_headers):
        product = make_product()
        mine = make_order(customer, product)
        make_order(make_user(), product)

        data = client.get(f"{ORDERS_URL}/me", headers=auth_headers(customer)).get_json()["data"]

        assert [order["id"] for order in data["orders"]] == [mine.id]
        assert data["total"] == 1
        assert data["has_more"] is False

    def test_other_users_order_is_forbidden(self, client, customer, make_user, make_product, make_order, auth_headers):
        order = make_order(make_user(), make_product())

        response = client.get(f"{ORDERS_URL}/{order.id}", headers=auth_headers(customer))

        assert response.status_code == 403

    def test_admin_reads_any_order_with_address(self, client, customer, admin, make_product, make_order, auth_headers):
        order = make_order(customer, make_product())

        response = client.get(f"{ORDERS_URL}/{order.id}", headers=auth_headers(admin))

        data = response.get_json()["data"]
        assert data["order_number"] == order.order_number
        assert "shipping_address" in data

    def test_lookup_by_order_number(self, client, customer, make_product, make_order, auth_headers):
        order = make_order(customer, make_product(), status="processing")

        found = client.get(f"{ORDERS_URL}/by-number/{order.order_number}", headers=auth_headers(customer))
        missing = client.get(f"{ORDERS_URL}/by-number/cs_unknown", headers=auth_headers(customer))

        assert found.get_json()["data"]["status"] == "processing"
        assert missing.get_json()["data"] is None

    def test_admin_search_and_stats(self, client, customer, admin, make_product, make_order, auth_headers):
        product = make_product(base_price=1500)
        make_order(customer, product, status="delivered")
        make_order(customer, product, status="pending")

        listing = client.get(f"{ORDERS_URL}?status=pending", headers=auth_headers(admin)).get_json()["data"]
        stats = client.get(f"{ORDERS_URL}/stats", headers=auth_headers(admin)).get_json()["data"]

        assert listing["total"] == 1
        assert listing["orders"][0]["customer"]["email"] == customer.email
        assert stats["pending"] == 1
        assert stats["delivered"] == 1
        assert stats["total_orders"] == 2
        assert stats["total_revenue"] == 3000

    def test_inverted_date_range_is_400(self, client, admin, auth_headers):
        response = client.get(
            f"{ORDERS_URL}?start_date=2026-05-02&end_date=2026-05-01", headers=auth_headers(admin)
        )

        assert response.status_code == 400

    def test_update_status(self, client, customer, admin, make_product, make_order, auth_headers):
        order = make_order(customer, make_product(), status="processing")

        response = client.patch(
            f"{ORDERS_URL}/{order.id}/status",
            json={"status": "shipped", "tracking_number": "1Z999"},
            headers=auth_headers(admin),
        )

        data = response.get_json()["data"]
        assert data["status"] == "shipped"
        assert data["tracking_number"] == "1Z999"

    def test_manual_order(self, client, customer, admin, make_product, auth_headers):
        product = make_product()

        response = client.post(ORDERS_URL, json={
            "user_id": customer.id,
            "items": [{"product_id": product.id, "name": product.name, "quantity": 3, "price": 1000}],
            "tax": 250,
            "shipping": 500,
        }, headers=auth_headers(admin))

        data = response.get_json()["data"]
        assert response.status_code == 201
        assert data["order_number"].startswith("ORD-")
        assert (data["subtotal"], data["total"]) == (3000, 3750)

    def test_customer_cannot_use_admin_endpoints(self, client, customer, auth_headers):
        assert client.get(ORDERS_URL, headers=auth_headers(customer)).status_code == 403
        assert client.get(f"{ORDERS_URL}/stats", headers=auth_headers(customer)).status_code == 403

    def test_delete_missing_order_is_404(self, client, admin, auth_headers):
        response = client.delete(f"{ORDERS_URL}/424242", headers=auth_headers(admin))

        assert response.status_code == 404


def return_body(order, product, **fields):
    return {
        "order_id": order.id,
        "reason": "Does not fit",
        "items": [{"item_id": str(product.id), "quantity": 1, "reason": "too small"}],
        "refund_method": "original_payment",
        **fields,
    }


class TestReturns:

    def test_request_return_for_delivered_order(self, client, customer, make_product, make_order, auth_headers):
        product = make_product("Boots")
        order = make_order(customer, product, status="delivered")

        response = client.post(RETURNS_URL, json=return_body(order, product), headers=auth_headers(customer))

        assert response.status_code == 201
        assert response.get_json()["data"]["status"] == "pending"

        mine = client.get(f"{RETURNS_URL}/me", headers=auth_headers(customer)).get_json()["data"]
        assert mine[0]["order_number"] == order.order_number
        assert mine[0]["items"][0]["name"] == "Boots"

    def test_undelivered_order_cannot_be_returned(self, client, customer, make_product, make_order, auth_headers):
        product = make_product()
        order = make_order(customer, product, status="shipped")

        response = client.post(RETURNS_URL, json=return_body(order, product), headers=auth_headers(customer))

        assert response.status_code == 422
        assert response.get_json()["error"]["message"] == "Order must be delivered before it can be returned"

    def test_other_users_order_is_forbidden(self, client, customer, make_user, make_product, make_order, auth_headers):
        product = make_product()
        order = make_order(make_user(), product)

        response = client.post(RETURNS_URL, json=return_body(order, product), headers=auth_headers(customer))

        assert response.status_code == 403
        assert response.get_json()["error"]["message"] == "Unauthorized access to order"

    def test_unknown_refund_method_is_400(self, client, customer, make_product, make_order, auth_headers):
        product = make_product()
        order = make_order(customer, product)

        response = client.post(
            RETURNS_URL, json=return_body(order, product, refund_method="cash"), headers=auth_headers(customer)
        )

        assert response.status_code == 400

    def test_unknown_item_falls_back_to_placeholder(self, client, customer, make_product, make_order, auth_headers):
        product = make_product()
        order = make_order(customer, product)
        body = return_body(order, product)
        body["items"][0]["item_id"] = "999999"
        return_id = client.post(RETURNS_URL, json=body, headers=auth_headers(customer)).get_json()["data"]["id"]

        data = client.get(f"{RETURNS_URL}/{return_id}", headers=auth_headers(customer)).get_json()["data"]

        assert data["items"][0]["name"] == "Unknown Item"
        assert data["order_total"] == order.total

    def test_admin_workflow_and_stats(self, client, customer, admin, make_product, make_order, auth_headers):
        # Arrange
        product = make_product()
        order = make_order(customer, product)
        return_id = client.post(
            RETURNS_URL, json=return_body(order, product), headers=auth_headers(customer)
        ).get_json()["data"]["id"]

        # Act
        updated = client.patch(
            f"{RETURNS_URL}/{return_id}/status",
            json={"status": "approved", "admin_notes": "Label emailed", "refund_amount": 1000},
            headers=auth_headers(admin),
        )
        listing = client.get(f"{RETURNS_URL}?status=approved", headers=auth_headers(admin)).get_json()["data"]
        stats = client.get(f"{RETURNS_URL}/stats", headers=auth_headers(admin)).get_json()["data"]

        # Assert
        assert updated.get_json()["data"]["admin_notes"] == "Label emailed"
        assert listing[0]["user_email"] == customer.email
        assert stats == {"pending": 0, "approved": 1, "completed": 0, "total": 1}

    def test_pending_is_not_an_admin_status(self, client, customer, admin, make_product, make_order, auth_headers):
        product = make_product()
        order = make_order(customer, product)
        return_id = client.post(
            RETURNS_URL, json=return_body(order, product), headers=auth_headers(customer)
        ).get_json()["data"]["id"]

        response = client.patch(
            f"{RETURNS_URL}/{return_id}/status", json={"status": "pending"}, headers=auth_headers(admin)
        )

        assert response.status_code == 400

    def test_other_customer_cannot_read_return(self, client, customer, make_user, make_product, make_order, auth_headers):
        product = make_product()
        order = make_order(customer, product)
        return_id = client.post(
            RETURNS_URL, json=return_body(order, product), headers=auth_headers(customer)
        ).get_json()["data"]["id"]

        response = client.get(f"{RETURNS_URL}/{return_id}", headers=auth_headers(make_user()))

        assert response.status_code == 403
