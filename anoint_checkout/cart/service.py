"""
Logique panier pure (pas de fournisseur, pas de DB).
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List

from anoint_checkout.errors import EmptyCartError, ValidationError
from anoint_checkout.utils.money import ZERO, round_money, to_money
from .models import CartLineItem, CartSummary, ProductKind

# module anoint_checkout.cart.service
def aggregate_cart(items: Iterable[CartLineItem], *, for_checkout: bool = True) -> CartSummary:
    """
    Réduit les lignes du panier en {subtotal, total_weight_kg, has_physical_items}.
    - subtotal = Σ(unit_price × quantity), arrondi au centime
    - has_physical_items = au moins une ligne physique
    - Soulève EmptyCartError si le panier est vide et que l'agrégation sert au checkout
      (un aperçu tolère un panier vide).
    """
    items = list(items or [])
    if not items and for_checkout:
        raise EmptyCartError()

    subtotal = ZERO
    weight = Decimal("0")
    has_physical = False
    count = 0
    for item in items:
        subtotal += item.line_total
        count += item.quantity
        if item.is_physical:
            has_physical = True
            weight += (item.weight_kg or Decimal("0")) * item.quantity
    return CartSummary(
        subtotal=round_money(subtotal),
        total_weight_kg=weight,
        has_physical_items=has_physical,
        item_count=count,
    )

def _optional_decimal(value: Any, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        dec = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}")
    if dec < 0:
        raise ValidationError(f"Invalid {field}")
    return dec

def parse_line_items(payload: List[Dict[str, Any]]) -> List[CartLineItem]:
    """
    Construit des CartLineItem depuis le JSON client:
    [{ "productId", "title", "unitPrice", "quantity", "productKind", "weightKg", ... }]
    - Soulève ValidationError si une ligne est invalide (id vide, quantité < 1,
      prix négatif, type inconnu, article physique sans poids).
    """
    items: List[CartLineItem] = []
    for raw in payload or []:
        product_id = str(raw.get("productId") or raw.get("id") or "").strip()
        if not product_id:
            raise ValidationError("Cart item is missing productId")
        try:
            quantity = int(raw.get("quantity") or 0)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid quantity for {product_id}")
        if quantity < 1:
            raise ValidationError(f"Invalid quantity for {product_id}")
        price = to_money(raw.get("unitPrice", raw.get("price")))
        if price < 0:
            raise ValidationError(f"Invalid price for {product_id}")
        try:
            kind = ProductKind(str(raw.get("productKind") or raw.get("type") or "").lower())
        except ValueError:
            raise ValidationError(f"Invalid productKind for {product_id}")
        weight = _optional_decimal(raw.get("weightKg"), "weightKg")
        if kind == ProductKind.PHYSICAL and weight is None:
            raise ValidationError(f"Physical item {product_id} requires weightKg")
        items.append(CartLineItem(
            product_id=product_id,
            title=raw.get("title") or raw.get("name") or "",
            unit_price=price,
            quantity=quantity,
            product_kind=kind,
            weight_kg=weight if kind == ProductKind.PHYSICAL else None,
            length_cm=_optional_decimal(raw.get("lengthCm"), "lengthCm"),
            width_cm=_optional_decimal(raw.get("widthCm"), "widthCm"),
            height_cm=_optional_decimal(raw.get("heightCm"), "heightCm"),
        ))
    return items
