"""
Modèles du panier: lignes immuables (copiées dans la commande) et résumé agrégé.
"""
from dataclasses import dataclass, asdict
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from anoint_checkout.utils.money import format_money

# module anoint_checkout.cart.models
class ProductKind(str, Enum):
    PHYSICAL = "physical"
    DIGITAL = "digital"


@dataclass(frozen=True)
class CartLineItem:
    product_id: str
    title: str
    unit_price: Decimal
    quantity: int
    product_kind: ProductKind
    weight_kg: Optional[Decimal] = None
    length_cm: Optional[Decimal] = None
    width_cm: Optional[Decimal] = None
    height_cm: Optional[Decimal] = None

    @property
    def is_physical(self) -> bool:
        return self.product_kind == ProductKind.PHYSICAL

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["product_kind"] = self.product_kind.value
        data["unit_price"] = format_money(self.unit_price)
        for key in ("weight_kg", "length_cm", "width_cm", "height_cm"):
            if data[key] is not None:
                data[key] = str(data[key])
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLineItem":
        def _dec(v):
            return Decimal(str(v)) if v is not None else None
        return cls(
            product_id=str(data["product_id"]),
            title=data.get("title") or "",
            unit_price=Decimal(str(data["unit_price"])),
            quantity=int(data["quantity"]),
            product_kind=ProductKind(data["product_kind"]),
            weight_kg=_dec(data.get("weight_kg")),
            length_cm=_dec(data.get("length_cm")),
            width_cm=_dec(data.get("width_cm")),
            height_cm=_dec(data.get("height_cm")),
        )


@dataclass(frozen=True)
class CartSummary:
    subtotal: Decimal
    total_weight_kg: Decimal
    has_physical_items: bool
    item_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": format_money(self.subtotal),
            "totalWeightKg": str(self.total_weight_kg),
            "hasPhysicalItems": self.has_physical_items,
            "itemCount": self.item_count,
        }
