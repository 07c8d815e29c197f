import pytest

from anoint_checkout.cart import repository as cart_repository
from anoint_checkout.errors import ProviderUnavailableError
from anoint_checkout.payments.methods import Protocol


def _create_order(client, items, **extra):
    body = {"items": items, "customer": {"email": "buyer@example.com"}, **extra}
    return client.post("/api/v1/checkout/orders", json=body)


def test_physical_checkout_end_to_end(client, physical_item_payload, ontario_address, cleared_carts):
    # Arrange: création avec tarif explicite
    res = _create_order(
        client, [physical_item_payload],
        cartId="cart-42", shippingAddress=ontario_address, shippingRateId="cp-regular",
    )
    assert res.status_code == 200
    order = res.json()
    assert order["status"] == "review"
    assert order["subtotal"] == "48.22"
    assert order["shipping"] == "12.99"
    # (48.22 + 12.99) x 13% = 7.9573
    assert order["tax"]["total"] == "7.96"
    assert order["total"] == "69.17"

    # Act: moyen de paiement puis confirmation
    res = client.post(f"/api/v1/checkout/orders/{order['orderId']}/method", json={"methodId": "stripe"})
    assert res.status_code == 200
    assert res.json()["status"] == "method_selected"
    assert res.json()["processingFee"] == "2.01"
    assert res.json()["total"] == "71.18"

    res = client.post(f"/api/v1/checkout/orders/{order['orderId']}/confirm", json={"termsAccepted": True})

    # Assert
    assert res.status_code == 200
    data = res.json()
    assert data["payment"]["status"] == "succeeded"
    assert data["order"]["status"] == "succeeded"
    assert data["order"]["frozenAt"] is not None
    assert cleared_carts == ["cart-42"]
    assert client.get(f"/api/v1/checkout/orders/{order['orderId']}").json()["status"] == "succeeded"


def test_digital_checkout_needs_no_address(client, digital_item_payload):
    res = _create_order(client, [digital_item_payload])
    assert res.status_code == 200
    data = res.json()
    assert data["hasPhysicalItems"] is False
    assert data["shipping"] == "0.00"
    assert data["shippingAddress"] is None
    assert data["total"] == "50.00"


def test_multiple_rates_require_explicit_choice(client, physical_item_payload, ontario_address):
    res = _create_order(client, [physical_item_payload], shippingAddress=ontario_address)
    assert res.status_code == 400
    assert res.json()["detail"] == "A shipping rate must be selected"


def test_empty_cart_is_rejected(client):
    res = _create_order(client, [])
    assert res.status_code == 400
    assert res.json()["detail"] == "Cart is empty"


def test_malformed_body_is_400(client):
    res = client.post("/api/v1/checkout/orders", json={"items": []})
    assert res.status_code == 400
    assert res.json()["detail"] == "Missing required parameters"


def test_crypto_below_minimum_keeps_order_in_review(client, providers):
    res = _create_order(client, [{"productId": "e", "unitPrice": "5.00", "quantity": 1, "productKind": "digital"}])
    order_id = res.json()["orderId"]

    res = client.post(f"/api/v1/checkout/orders/{order_id}/method", json={"methodId": "nowpayments-btc"})

    assert res.status_code == 400
    assert res.json()["detail"] == "Minimum amount for Bitcoin is $10.00"
    assert client.get(f"/api/v1/checkout/orders/{order_id}").json()["status"] == "review"
    assert providers[Protocol.CRYPTO_ASSET].calls == []


def test_confirm_without_terms_is_rejected(client, digital_item_payload):
    order_id = _create_order(client, [digital_item_payload]).json()["orderId"]
    client.post(f"/api/v1/checkout/orders/{order_id}/method", json={"methodId": "stripe"})

    res = client.post(f"/api/v1/checkout/orders/{order_id}/confirm", json={})

    assert res.status_code == 400
    assert res.json()["detail"] == "Terms of service must be accepted"


def test_declined_card_can_switch_method(client, providers, digital_item_payload):
    providers[Protocol.CARD].configure(decline="Your card was declined")
    order_id = _create_order(client, [digital_item_payload]).json()["orderId"]
    client.post(f"/api/v1/checkout/orders/{order_id}/method", json={"methodId": "stripe"})

    res = client.post(f"/api/v1/checkout/orders/{order_id}/confirm", json={"termsAccepted": True})

    assert res.status_code == 200
    assert res.json()["order"]["status"] == "method_selected"
    assert res.json()["order"]["failureReason"] == "Your card was declined"
    res = client.post(f"/api/v1/checkout/orders/{order_id}/method", json={"methodId": "paypal"})
    assert res.json()["methodId"] == "paypal"


def test_reprice_before_payment(client, physical_item_payload, ontario_address):
    order_id = _create_order(
        client, [physical_item_payload], shippingAddress=ontario_address, shippingRateId="cp-regular",
    ).json()["orderId"]

    res = client.post(f"/api/v1/checkout/orders/{order_id}/shipping", json={"shippingRateId": "ups-ground"})

    assert res.status_code == 200
    assert res.json()["shipping"] == "15.49"


def test_retry_after_expiry(client, orchestrator, make_order, crypto_details):
    from anoint_checkout.orders.models import OrderStatus

    order = make_order(OrderStatus.EXPIRED, crypto=crypto_details())

    res = client.post(f"/api/v1/checkout/orders/{order.order_id}/retry")

    assert res.status_code == 200
    assert res.json()["orderId"] == f"{order.order_id}-R1"
    assert res.json()["status"] == "review"
    assert res.json()["parentOrderId"] == order.order_id


def test_order_from_persisted_cart(client, monkeypatch, digital_item_payload):
    # Arrange: aucune ligne dans le corps, le panier est relu par cartId
    seen = []

    def _fetch(cart_id):
        seen.append(cart_id)
        return [digital_item_payload]

    monkeypatch.setattr(cart_repository, "fetch_cart_items", _fetch)

    # Act
    res = client.post("/api/v1/checkout/orders", json={"cartId": "cart-77", "customer": {"email": "buyer@example.com"}})

    # Assert
    assert res.status_code == 200
    assert seen == ["cart-77"]
    assert res.json()["subtotal"] == "50.00"


def test_explicit_items_win_over_persisted_cart(client, monkeypatch, digital_item_payload):
    monkeypatch.setattr(cart_repository, "fetch_cart_items", lambda cart_id: pytest.fail("cart should not be read"))
    res = _create_order(client, [digital_item_payload], cartId="cart-77")
    assert res.status_code == 200


def test_unreachable_cart_store_is_503(client, monkeypatch):
    def _down(cart_id):
        raise ProviderUnavailableError("Cart is temporarily unavailable, please retry")

    monkeypatch.setattr(cart_repository, "fetch_cart_items", _down)
    res = client.post("/api/v1/checkout/orders", json={"cartId": "cart-77", "customer": {"email": "buyer@example.com"}})
    assert res.status_code == 503
    assert res.json()["detail"] == "Cart is temporarily unavailable, please retry"


def test_confirm_expired_order_is_400(client, make_order, crypto_details):
    from anoint_checkout.orders.models import OrderStatus

    order = make_order(OrderStatus.EXPIRED, crypto=crypto_details(), method_id="nowpayments-btc")

    res = client.post(f"/api/v1/checkout/orders/{order.order_id}/confirm", json={"termsAccepted": True})

    assert res.status_code == 400
    assert res.json()["detail"] == "This payment attempt has expired, please start a new one"


def test_unknown_order_is_404(client):
    res = client.get("/api/v1/checkout/orders/AA-UNKNOWN")
    assert res.status_code == 404
    assert res.json()["detail"] == "Order not found: AA-UNKNOWN"


def test_checkout_responses_are_not_cached(client):
    res = client.get("/api/v1/checkout/orders/AA-UNKNOWN")
    assert res.headers["Cache-Control"] == "no-store"
    assert res.headers["X-Frame-Options"] == "DENY"
