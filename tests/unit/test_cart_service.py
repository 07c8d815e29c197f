from decimal import Decimal
from unittest.mock import MagicMock
import pytest

from anoint_checkout.cart import CartLineItem, ProductKind, aggregate_cart, parse_line_items
from anoint_checkout.cart import repository as cart_repository
from anoint_checkout.errors import EmptyCartError, ProviderUnavailableError, ValidationError


def _item(price, qty, kind=ProductKind.PHYSICAL, weight="0.5"):
    return CartLineItem(
        product_id=f"p-{price}-{qty}",
        title="item",
        unit_price=Decimal(price),
        quantity=qty,
        product_kind=kind,
        weight_kg=Decimal(weight) if kind == ProductKind.PHYSICAL else None,
    )


def test_aggregate_cart_subtotal_and_weight():
    # Arrange
    items = [_item("24.11", 2), _item("10.00", 1, ProductKind.DIGITAL)]

    # Act
    summary = aggregate_cart(items)

    # Assert
    assert summary.subtotal == Decimal("58.22")
    assert summary.total_weight_kg == Decimal("1.0")
    assert summary.has_physical_items is True
    assert summary.item_count == 3


def test_aggregate_cart_digital_only_has_no_physical_items():
    summary = aggregate_cart([_item("9.99", 3, ProductKind.DIGITAL)])
    assert summary.has_physical_items is False
    assert summary.total_weight_kg == Decimal("0")
    assert summary.subtotal == Decimal("29.97")


def test_aggregate_cart_empty_raises_for_checkout():
    with pytest.raises(EmptyCartError) as exc:
        aggregate_cart([])
    assert exc.value.message == "Cart is empty"
    assert exc.value.status_code == 400


def test_aggregate_cart_empty_allowed_for_preview():
    summary = aggregate_cart([], for_checkout=False)
    assert summary.subtotal == Decimal("0.00")
    assert summary.item_count == 0


def test_parse_line_items_accepts_client_payload(physical_item_payload, digital_item_payload):
    items = parse_line_items([physical_item_payload, digital_item_payload])

    assert [i.product_id for i in items] == ["oil-30ml", "ebook-1"]
    assert items[0].unit_price == Decimal("24.11")
    assert items[0].weight_kg == Decimal("0.5")
    assert items[1].product_kind == ProductKind.DIGITAL
    assert items[1].weight_kg is None


@pytest.mark.parametrize(
    "override, message",
    [
        ({"quantity": 0}, "Invalid quantity for oil-30ml"),
        ({"unitPrice": "-1"}, "Invalid price for oil-30ml"),
        ({"productKind": "gift"}, "Invalid productKind for oil-30ml"),
        ({"weightKg": None}, "Physical item oil-30ml requires weightKg"),
        ({"productId": ""}, "Cart item is missing productId"),
    ],
)
def test_parse_line_items_rejects_invalid_lines(physical_item_payload, override, message):
    raw = {**physical_item_payload, **override}
    with pytest.raises(ValidationError) as exc:
        parse_line_items([raw])
    assert exc.value.message == message


def test_line_item_dict_roundtrip_keeps_decimals():
    item = _item("24.11", 2)
    restored = CartLineItem.from_dict(item.to_dict())
    assert restored == item


def test_fetch_cart_items_maps_rows_to_line_payloads(monkeypatch):
    # Arrange
    client = MagicMock()
    client.table.return_value.select.return_value.eq.return_value.execute.return_value.data = [
        {"cart_id": "cart-1", "product_id": "oil-1", "title": "Anointing Oil", "unit_price": "24.11",
         "quantity": 2, "product_kind": "physical", "weight_kg": "0.25", "length_cm": None},
    ]
    monkeypatch.setattr(cart_repository, "get_service_supabase", lambda: client)

    # Act
    lines = cart_repository.fetch_cart_items("cart-1")
    items = parse_line_items(lines)

    # Assert
    client.table.assert_called_with("cart_items")
    client.table.return_value.select.return_value.eq.assert_called_with("cart_id", "cart-1")
    assert lines == [{"productId": "oil-1", "title": "Anointing Oil", "unitPrice": "24.11", "quantity": 2,
                      "productKind": "physical", "weightKg": "0.25"}]
    assert items[0].unit_price == Decimal("24.11")
    assert items[0].weight_kg == Decimal("0.25")


def test_fetch_cart_items_unreachable_store_is_unavailable(monkeypatch):
    def _boom():
        raise ConnectionError("supabase down")

    monkeypatch.setattr(cart_repository, "get_service_supabase", _boom)
    with pytest.raises(ProviderUnavailableError) as exc:
        cart_repository.fetch_cart_items("cart-1")
    assert exc.value.status_code == 503
