from decimal import Decimal
import pytest

from anoint_checkout.payments import PaymentMethod, PaymentMethodRegistry, Protocol, calculate_fee, fee_breakdown, registry


def test_registry_lists_all_rails():
    assert {m.protocol for m in registry.all()} == set(Protocol)
    assert registry.get("stripe").protocol == Protocol.CARD
    assert registry.by_asset("eth").id == "nowpayments-eth"
    assert registry.by_asset("DOGE") is None


def test_validate_unknown_method():
    result = registry.validate("cash", Decimal("20.00"), False)
    assert result.valid is False
    assert result.reason == "unsupported method"


def test_validate_crypto_below_minimum_names_the_bound():
    # Arrange / Act
    result = registry.validate("nowpayments-btc", Decimal("9.99"), False)

    # Assert
    assert result.valid is False
    assert result.reason == "Minimum amount for Bitcoin is $10.00"


def test_validate_above_maximum():
    result = registry.validate("paypal", Decimal("10000.01"), True)
    assert result.valid is False
    assert result.reason == "Maximum amount for PayPal is $10000.00"


def test_validate_bounds_are_inclusive():
    assert registry.validate("nowpayments-btc", Decimal("10.00"), False).valid is True
    assert registry.validate("paypal", Decimal("10000.00"), False).valid is True


def test_validate_physical_only_method():
    local = PaymentMethodRegistry([
        PaymentMethod("cod", Protocol.CARD, "Cash on delivery", Decimal("0"), Decimal("1"), Decimal("500"),
                      physical_only=True),
    ])
    result = local.validate("cod", Decimal("20.00"), False)
    assert result.valid is False
    assert "physical items" in result.reason
    assert local.validate("cod", Decimal("20.00"), True).valid is True


def test_validate_is_pure():
    first = registry.validate("stripe", Decimal("0.49"), False)
    second = registry.validate("stripe", Decimal("0.49"), False)
    assert first == second


@pytest.mark.parametrize(
    "method_id, total, fee",
    [
        ("stripe", "100.00", "2.90"),
        ("paypal", "100.00", "3.49"),
        ("nowpayments-btc", "50.00", "0.25"),
        ("stripe", "65.78", "1.91"),
    ],
)
def test_calculate_fee_rounds_half_up(method_id, total, fee):
    assert calculate_fee(Decimal(total), registry.get(method_id)) == Decimal(fee)


def test_fee_breakdown_adds_fee_to_total():
    assert fee_breakdown(Decimal("100.00"), registry.get("paypal")) == {
        "methodId": "paypal",
        "fee": "3.49",
        "total": "103.49",
    }
