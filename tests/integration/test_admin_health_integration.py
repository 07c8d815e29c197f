from unittest.mock import patch

from anoint_checkout.orders.models import OrderStatus


def test_admin_orders_requires_token(client):
    res = client.get("/api/v1/admin/orders")
    assert res.status_code == 401


def test_admin_orders_forbidden_for_buyers(client):
    buyer = {"id": "u-1", "email": "buyer@example.com", "role": "user"}
    with patch("anoint_checkout.utils.security.get_user_from_token", return_value=buyer):
        res = client.get("/api/v1/admin/orders", headers={"Authorization": "Bearer tok"})
    assert res.status_code == 403


def test_admin_lists_orders_by_status(authenticated_admin_client, make_order):
    # Arrange
    paid = make_order(OrderStatus.SUCCEEDED)
    make_order(OrderStatus.REVIEW)

    # Act
    res = authenticated_admin_client.get("/api/v1/admin/orders", params={"status": "succeeded"})

    # Assert
    assert res.status_code == 200
    assert [o["orderId"] for o in res.json()["orders"]] == [paid.order_id]


def test_admin_unknown_status_filter(authenticated_admin_client):
    res = authenticated_admin_client.get("/api/v1/admin/orders", params={"status": "shipped"})
    assert res.status_code == 400
    assert res.json()["detail"] == "Unknown status: shipped"


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"ok": True}


def test_health_supabase(client):
    info = {"connect_ok": True, "order_store": "memory", "tables": {"orders": {"ok": True, "rows": 0}}}
    with patch("anoint_checkout.health.service.health_supabase_info", return_value=info):
        res = client.get("/health/supabase")
    assert res.status_code == 200
    assert res.json()["connect_ok"] is True
    assert res.json()["tables"]["orders"]["ok"] is True
