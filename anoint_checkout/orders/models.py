"""
OrderData: représentation figée et payable d'un panier, avec ses totaux et son statut.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from anoint_checkout.cart.models import CartLineItem
from anoint_checkout.payments.models import CryptoPaymentDetails
from anoint_checkout.shipping.models import ShippingAddress, ShippingRate
from anoint_checkout.taxes.service import TaxBreakdown
from anoint_checkout.utils.money import ZERO, format_money, round_money

# module anoint_checkout.orders.models
class OrderStatus(str, Enum):
    REVIEW = "review"
    METHOD_SELECTED = "method_selected"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CRYPTO_PENDING = "crypto_pending"
    EXPIRED = "expired"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_dt(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class OrderData:
    order_id: str
    items: Tuple[CartLineItem, ...]
    subtotal: Decimal
    shipping_price: Decimal
    tax: TaxBreakdown
    currency: str
    customer: Dict[str, Any]
    has_physical_items: bool
    status: OrderStatus = OrderStatus.REVIEW
    processing_fee: Decimal = ZERO
    shipping_address: Optional[ShippingAddress] = None
    billing_address: Optional[ShippingAddress] = None
    shipping_rate: Optional[ShippingRate] = None
    cart_id: Optional[str] = None
    method_id: Optional[str] = None
    failure_reason: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    crypto: Optional[CryptoPaymentDetails] = None
    parent_order_id: Optional[str] = None
    payment_attempts: int = 0
    terms_accepted_at: Optional[datetime] = None
    frozen_at: Optional[datetime] = None
    cart_cleared_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def total(self) -> Decimal:
        return round_money(self.subtotal + self.shipping_price + self.tax.total + self.processing_fee)

    @property
    def pre_fee_total(self) -> Decimal:
        return round_money(self.subtotal + self.shipping_price + self.tax.total)

    @property
    def is_frozen(self) -> bool:
        return self.frozen_at is not None

    @property
    def attempt_key(self) -> str:
        """Identifiant de la tentative de paiement courante (clés d'idempotence fournisseur)."""
        return f"{self.order_id}-a{self.payment_attempts}"

    def to_dict(self) -> Dict[str, Any]:
        """Vue API (camelCase, montants en chaînes)."""
        return {
            "orderId": self.order_id,
            "status": self.status.value,
            "items": [i.to_dict() for i in self.items],
            "subtotal": format_money(self.subtotal),
            "shipping": format_money(self.shipping_price),
            "tax": self.tax.to_dict(),
            "processingFee": format_money(self.processing_fee),
            "total": format_money(self.total),
            "currency": self.currency,
            "customer": self.customer,
            "hasPhysicalItems": self.has_physical_items,
            "shippingAddress": self.shipping_address.to_dict() if self.shipping_address else None,
            "billingAddress": self.billing_address.to_dict() if self.billing_address else None,
            "shippingRate": self.shipping_rate.to_dict() if self.shipping_rate else None,
            "methodId": self.method_id,
            "failureReason": self.failure_reason,
            "transactionId": self.provider_transaction_id,
            "cryptoDetails": self.crypto.to_dict() if self.crypto else None,
            "parentOrderId": self.parent_order_id,
            "paymentAttempts": self.payment_attempts,
            "termsAcceptedAt": _iso(self.terms_accepted_at),
            "frozenAt": _iso(self.frozen_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def to_record(self) -> Dict[str, Any]:
        """Ligne de la table Supabase 'orders'."""
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "items": [i.to_dict() for i in self.items],
            "subtotal": format_money(self.subtotal),
            "shipping_price": format_money(self.shipping_price),
            "tax": self.tax.to_dict(),
            "processing_fee": format_money(self.processing_fee),
            "total": format_money(self.total),
            "currency": self.currency,
            "customer": self.customer,
            "has_physical_items": self.has_physical_items,
            "shipping_address": self.shipping_address.to_dict() if self.shipping_address else None,
            "billing_address": self.billing_address.to_dict() if self.billing_address else None,
            "shipping_rate": self.shipping_rate.to_dict() if self.shipping_rate else None,
            "cart_id": self.cart_id,
            "method_id": self.method_id,
            "failure_reason": self.failure_reason,
            "provider_transaction_id": self.provider_transaction_id,
            "crypto": self.crypto.to_dict() if self.crypto else None,
            "parent_order_id": self.parent_order_id,
            "payment_attempts": self.payment_attempts,
            "terms_accepted_at": _iso(self.terms_accepted_at),
            "frozen_at": _iso(self.frozen_at),
            "cart_cleared_at": _iso(self.cart_cleared_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "OrderData":
        return cls(
            order_id=row["order_id"],
            status=OrderStatus(row["status"]),
            items=tuple(CartLineItem.from_dict(i) for i in row.get("items") or []),
            subtotal=Decimal(str(row["subtotal"])),
            shipping_price=Decimal(str(row.get("shipping_price") or "0.00")),
            tax=TaxBreakdown.from_dict(row.get("tax") or {}),
            processing_fee=Decimal(str(row.get("processing_fee") or "0.00")),
            currency=row.get("currency") or "CAD",
            customer=row.get("customer") or {},
            has_physical_items=bool(row.get("has_physical_items")),
            shipping_address=ShippingAddress(**row["shipping_address"]) if row.get("shipping_address") else None,
            billing_address=ShippingAddress(**row["billing_address"]) if row.get("billing_address") else None,
            shipping_rate=ShippingRate.from_payload(row["shipping_rate"]) if row.get("shipping_rate") else None,
            cart_id=row.get("cart_id"),
            method_id=row.get("method_id"),
            failure_reason=row.get("failure_reason"),
            provider_transaction_id=row.get("provider_transaction_id"),
            crypto=CryptoPaymentDetails.from_dict(row["crypto"]) if row.get("crypto") else None,
            parent_order_id=row.get("parent_order_id"),
            payment_attempts=int(row.get("payment_attempts") or 0),
            terms_accepted_at=_parse_dt(row.get("terms_accepted_at")),
            frozen_at=_parse_dt(row.get("frozen_at")),
            cart_cleared_at=_parse_dt(row.get("cart_cleared_at")),
            created_at=_parse_dt(row.get("created_at")) or utcnow(),
            updated_at=_parse_dt(row.get("updated_at")) or utcnow(),
        )


# Champs sérialisés différemment entre OrderData et la ligne Supabase
RECORD_FIELD_ENCODERS = {
    "status": lambda v: v.value,
    "processing_fee": format_money,
    "shipping_price": format_money,
    "subtotal": format_money,
    "tax": lambda v: v.to_dict(),
    "crypto": lambda v: v.to_dict() if v else None,
    "shipping_rate": lambda v: v.to_dict() if v else None,
    "shipping_address": lambda v: v.to_dict() if v else None,
    "billing_address": lambda v: v.to_dict() if v else None,
    "items": lambda v: [i.to_dict() for i in v],
    "terms_accepted_at": _iso,
    "frozen_at": _iso,
    "cart_cleared_at": _iso,
    "created_at": _iso,
    "updated_at": _iso,
}
