"""
Catalogue statique des moyens de paiement et leurs contraintes.
"""
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from anoint_checkout.utils.money import format_money

# module anoint_checkout.payments.methods
class Protocol(str, Enum):
    CARD = "card"
    REDIRECT_WALLET = "redirect-wallet"
    CRYPTO_ASSET = "crypto-asset"


@dataclass(frozen=True)
class PaymentMethod:
    id: str
    protocol: Protocol
    name: str
    fee_percent: Decimal
    min_amount: Decimal
    max_amount: Decimal
    physical_only: bool = False
    description: str = ""
    processing_time: str = ""
    asset_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "protocol": self.protocol.value,
            "name": self.name,
            "description": self.description,
            "feePercent": str(self.fee_percent),
            "minAmount": format_money(self.min_amount),
            "maxAmount": format_money(self.max_amount),
            "physicalOnly": self.physical_only,
            "processingTime": self.processing_time,
            "assetCode": self.asset_code,
        }


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None


DEFAULT_METHODS: List[PaymentMethod] = [
    PaymentMethod(
        id="stripe", protocol=Protocol.CARD, name="Credit/Debit Card",
        fee_percent=Decimal("2.9"), min_amount=Decimal("0.50"), max_amount=Decimal("999999.99"),
        description="Visa, Mastercard, American Express", processing_time="Instant",
    ),
    PaymentMethod(
        id="paypal", protocol=Protocol.REDIRECT_WALLET, name="PayPal",
        fee_percent=Decimal("3.49"), min_amount=Decimal("1.00"), max_amount=Decimal("10000.00"),
        description="Pay with your PayPal account", processing_time="Instant",
    ),
    PaymentMethod(
        id="nowpayments-btc", protocol=Protocol.CRYPTO_ASSET, name="Bitcoin",
        fee_percent=Decimal("0.5"), min_amount=Decimal("10.00"), max_amount=Decimal("50000.00"),
        description="Pay with Bitcoin", processing_time="10-60 minutes", asset_code="BTC",
    ),
    PaymentMethod(
        id="nowpayments-eth", protocol=Protocol.CRYPTO_ASSET, name="Ethereum",
        fee_percent=Decimal("0.5"), min_amount=Decimal("10.00"), max_amount=Decimal("50000.00"),
        description="Pay with Ethereum", processing_time="2-15 minutes", asset_code="ETH",
    ),
    PaymentMethod(
        id="nowpayments-ltc", protocol=Protocol.CRYPTO_ASSET, name="Litecoin",
        fee_percent=Decimal("0.5"), min_amount=Decimal("10.00"), max_amount=Decimal("50000.00"),
        description="Pay with Litecoin", processing_time="5-30 minutes", asset_code="LTC",
    ),
]


class PaymentMethodRegistry:
    def __init__(self, methods: Iterable[PaymentMethod] = DEFAULT_METHODS):
        self._methods: Dict[str, PaymentMethod] = {m.id: m for m in methods}

    def get(self, method_id: str) -> Optional[PaymentMethod]:
        return self._methods.get(method_id)

    def all(self) -> List[PaymentMethod]:
        return list(self._methods.values())

    def by_protocol(self, protocol: Protocol) -> List[PaymentMethod]:
        return [m for m in self._methods.values() if m.protocol == protocol]

    def by_asset(self, asset_code: str) -> Optional[PaymentMethod]:
        code = (asset_code or "").upper()
        for method in self.by_protocol(Protocol.CRYPTO_ASSET):
            if method.asset_code == code:
                return method
        return None

    def validate(self, method_id: str, order_total: Decimal, has_physical_items: bool) -> ValidationResult:
        """
        Règles, par priorité:
        1. méthode inconnue -> "unsupported method"
        2. méthode réservée aux articles physiques sans article physique
        3. montant hors [min, max], la borne violée est nommée
        Fonction pure: mêmes entrées, même résultat.
        """
        method = self._methods.get(method_id)
        if method is None:
            return ValidationResult(False, "unsupported method")
        if method.physical_only and not has_physical_items:
            return ValidationResult(False, f"{method.name} is only available for orders with physical items")
        if order_total < method.min_amount:
            return ValidationResult(
                False, f"Minimum amount for {method.name} is ${format_money(method.min_amount)}"
            )
        if order_total > method.max_amount:
            return ValidationResult(
                False, f"Maximum amount for {method.name} is ${format_money(method.max_amount)}"
            )
        return ValidationResult(True)


registry = PaymentMethodRegistry()
