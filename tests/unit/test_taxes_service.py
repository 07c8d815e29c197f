from decimal import Decimal
import pytest

from anoint_checkout.shipping.models import ShippingAddress
from anoint_checkout.taxes import calculate_tax, jurisdiction_for
from anoint_checkout.taxes.service import EXEMPT, SINGLE, SPLIT


def _address(province="ON", country="CA"):
    return ShippingAddress("Jane", ["1 Main St"], "City", province, "A1A1A1", country)


def test_ontario_single_tax_includes_shipping_in_base():
    # Arrange: sous-total 48.22, livraison 9.99 -> base 58.21
    jurisdiction = jurisdiction_for(_address("ON"), True)

    # Act
    tax = calculate_tax(Decimal("48.22"), Decimal("9.99"), jurisdiction)

    # Assert: 58.21 x 13% = 7.5673 -> 7.57
    assert tax.regime == SINGLE
    assert tax.total == Decimal("7.57")
    assert [(l.label, l.amount) for l in tax.lines] == [("HST", Decimal("7.57"))]
    assert Decimal("48.22") + Decimal("9.99") + tax.total == Decimal("65.78")


def test_quebec_split_rates_on_same_base():
    tax = calculate_tax(Decimal("100.00"), Decimal("0.00"), "QC")
    assert tax.regime == SPLIT
    assert [(l.label, l.amount) for l in tax.lines] == [
        ("GST", Decimal("5.00")),
        ("QST", Decimal("9.98")),
    ]
    assert tax.total == Decimal("14.98")


@pytest.mark.parametrize(
    "province, expected",
    [("NS", Decimal("15.00")), ("AB", Decimal("5.00")), ("BC", Decimal("12.00")), ("XX", Decimal("5.00"))],
)
def test_provincial_rates(province, expected):
    assert calculate_tax(Decimal("100.00"), Decimal("0.00"), province).total == expected


def test_digital_order_is_exempt():
    assert jurisdiction_for(_address("ON"), False) is None
    tax = calculate_tax(Decimal("50.00"), Decimal("0.00"), None)
    assert tax.regime == EXEMPT
    assert tax.total == Decimal("0.00")
    assert tax.lines == ()


def test_foreign_address_is_exempt():
    assert jurisdiction_for(_address("NY", "US"), True) is None


def test_breakdown_dict_roundtrip():
    tax = calculate_tax(Decimal("10.00"), Decimal("5.00"), "MB")
    data = tax.to_dict()
    assert data["total"] == "1.80"
    assert type(tax).from_dict(data) == tax
