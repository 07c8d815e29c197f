"""
Helpers monétaires: Decimal quantifié au centime, arrondi half-up.
Aucun float dans les calculs; conversion en chaîne uniquement à la frontière JSON.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

from anoint_checkout.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# module anoint_checkout.utils.money
def to_money(value: Any) -> Decimal:
    """
    Convertit str|int|Decimal en Decimal à 2 décimales (half-up).
    - Les float passent par str() pour ne pas hériter de leur représentation binaire.
    - Soulève ValidationError si la valeur n'est pas un nombre.
    """
    if isinstance(value, Decimal):
        dec = value
    else:
        try:
            dec = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount: {value!r}")
    if not dec.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        return dec.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # trop de chiffres pour la précision du contexte (ex: 1e30)
        raise ValidationError(f"Invalid amount: {value!r}")

def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)

def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return round_money(amount * percent / Decimal(100))

def to_minor_units(amount: Decimal) -> int:
    """Montant en centimes (Stripe attend des entiers)."""
    return int((round_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))

def format_money(amount: Decimal) -> str:
    return str(round_money(amount))
