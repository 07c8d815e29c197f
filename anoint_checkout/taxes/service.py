"""
Calcul des taxes de vente canadiennes, piloté par table.
Trois régimes: taxe unique combinée (HST/GST seule), deux taxes sur la même base
(GST + PST/QST/RST), aucune taxe (hors Canada ou commande 100% numérique).
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from anoint_checkout.shipping.models import ShippingAddress
from anoint_checkout.utils.money import ZERO, format_money, percent_of, round_money

SINGLE = "single"
SPLIT = "split"
EXEMPT = "exempt"

GST = ("GST", Decimal("5"))

# province -> (régime, [(libellé, taux %)])
TAX_TABLE: Dict[str, Tuple[str, List[Tuple[str, Decimal]]]] = {
    "ON": (SINGLE, [("HST", Decimal("13"))]),
    "NB": (SINGLE, [("HST", Decimal("15"))]),
    "NL": (SINGLE, [("HST", Decimal("15"))]),
    "NS": (SINGLE, [("HST", Decimal("15"))]),
    "PE": (SINGLE, [("HST", Decimal("15"))]),
    "AB": (SINGLE, [GST]),
    "NT": (SINGLE, [GST]),
    "NU": (SINGLE, [GST]),
    "YT": (SINGLE, [GST]),
    "BC": (SPLIT, [GST, ("PST", Decimal("7"))]),
    "SK": (SPLIT, [GST, ("PST", Decimal("6"))]),
    "MB": (SPLIT, [GST, ("RST", Decimal("7"))]),
    "QC": (SPLIT, [GST, ("QST", Decimal("9.975"))]),
}

# Province canadienne absente de la table: GST fédérale seule
DEFAULT_CANADIAN_REGIME = (SINGLE, [GST])

# module anoint_checkout.taxes.service
@dataclass(frozen=True)
class TaxLine:
    label: str
    rate: Decimal
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "rate": str(self.rate), "amount": format_money(self.amount)}


@dataclass(frozen=True)
class TaxBreakdown:
    jurisdiction: Optional[str]
    regime: str
    lines: Tuple[TaxLine, ...] = field(default_factory=tuple)

    @property
    def total(self) -> Decimal:
        return round_money(sum((line.amount for line in self.lines), ZERO))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jurisdiction": self.jurisdiction,
            "regime": self.regime,
            "lines": [line.to_dict() for line in self.lines],
            "total": format_money(self.total),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaxBreakdown":
        return cls(
            jurisdiction=data.get("jurisdiction"),
            regime=data.get("regime") or EXEMPT,
            lines=tuple(
                TaxLine(l["label"], Decimal(str(l["rate"])), Decimal(str(l["amount"])))
                for l in data.get("lines") or []
            ),
        )


def jurisdiction_for(address: Optional[ShippingAddress], has_physical_items: bool) -> Optional[str]:
    """
    Clé de juridiction fiscale:
    - None pour une commande numérique, sans adresse, ou hors Canada
    - sinon le code province en majuscules
    """
    if not has_physical_items or address is None:
        return None
    if (address.country or "").upper() != "CA":
        return None
    return (address.province or "").upper() or None

def calculate_tax(subtotal: Decimal, shipping: Decimal, jurisdiction: Optional[str]) -> TaxBreakdown:
    """
    Base taxable = sous-total + livraison. Chaque ligne est arrondie au centime (half-up),
    le total est la somme des lignes.
    """
    if not jurisdiction:
        return TaxBreakdown(jurisdiction=None, regime=EXEMPT)
    regime, rates = TAX_TABLE.get(jurisdiction.upper(), DEFAULT_CANADIAN_REGIME)
    base = subtotal + shipping
    lines = tuple(TaxLine(label, rate, percent_of(base, rate)) for label, rate in rates)
    return TaxBreakdown(jurisdiction=jurisdiction.upper(), regime=regime, lines=lines)
