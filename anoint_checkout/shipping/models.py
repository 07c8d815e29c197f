from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, List, Optional

from anoint_checkout.errors import ValidationError
from anoint_checkout.utils.money import format_money, to_money

# module anoint_checkout.shipping.models
@dataclass(frozen=True)
class ShippingAddress:
    name: str
    address_lines: List[str]
    city: str
    province: str
    postal_code: str
    country: str
    phone: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ShippingAddress":
        """
        Accepte le format client (camelCase) ou la forme persistée (snake_case).
        - Soulève ValidationError si un champ obligatoire manque.
        """
        data = data or {}
        lines = data.get("addressLines") or data.get("address_lines")
        if not lines:
            lines = [v for v in (data.get("address"), data.get("address2")) if v]
        address = cls(
            name=str(data.get("name") or "").strip(),
            address_lines=[str(v).strip() for v in lines if str(v).strip()],
            city=str(data.get("city") or "").strip(),
            province=str(data.get("province") or data.get("state") or "").strip().upper(),
            postal_code=str(data.get("postalCode") or data.get("postal_code") or "").strip().upper(),
            country=str(data.get("country") or "CA").strip().upper(),
            phone=(str(data.get("phone")).strip() or None) if data.get("phone") else None,
        )
        missing = [
            label for label, value in (
                ("name", address.name),
                ("address", address.address_lines),
                ("city", address.city),
                ("province", address.province),
                ("postalCode", address.postal_code),
            ) if not value
        ]
        if missing:
            raise ValidationError(f"Shipping address is missing: {', '.join(missing)}")
        return address

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ShippingRate:
    id: str
    carrier: str
    name: str
    price: Decimal
    estimated_days: str
    guaranteed: bool = False
    service_code: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "carrier": self.carrier,
            "name": self.name,
            "price": format_money(self.price),
            "estimatedDays": self.estimated_days,
            "guaranteed": self.guaranteed,
            "serviceCode": self.service_code,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ShippingRate":
        try:
            return cls(
                id=str(data["id"]),
                carrier=str(data.get("carrier") or ""),
                name=str(data.get("name") or ""),
                price=to_money(data["price"]),
                estimated_days=str(data.get("estimatedDays") or data.get("estimated_days") or ""),
                guaranteed=bool(data.get("guaranteed")),
                service_code=str(data.get("serviceCode") or data.get("service_code") or ""),
            )
        except KeyError as e:
            raise ValidationError(f"Invalid shipping rate: missing {e.args[0]}")


@dataclass(frozen=True)
class Parcel:
    weight_kg: Decimal
    length_cm: Decimal
    width_cm: Decimal
    height_cm: Decimal

    @property
    def volume_cm3(self) -> Decimal:
        return self.length_cm * self.width_cm * self.height_cm
