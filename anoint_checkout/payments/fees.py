from decimal import Decimal
from typing import Dict

from anoint_checkout.utils.money import format_money, percent_of, round_money
from .methods import PaymentMethod

# module anoint_checkout.payments.fees
def calculate_fee(order_total: Decimal, method: PaymentMethod) -> Decimal:
    """Frais fournisseur = round_half_up(total × fee% / 100, 2). Toujours ajouté, jamais absorbé."""
    return percent_of(order_total, method.fee_percent)

def fee_breakdown(order_total: Decimal, method: PaymentMethod) -> Dict[str, str]:
    fee = calculate_fee(order_total, method)
    return {
        "methodId": method.id,
        "fee": format_money(fee),
        "total": format_money(round_money(order_total + fee)),
    }
