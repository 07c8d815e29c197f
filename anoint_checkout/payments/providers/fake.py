"""
Fournisseur factice, déterministe et configurable (dev local et tests).
Enregistre chaque appel dans `calls`.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import count
from typing import Any, Dict, List, Optional

from anoint_checkout.errors import ProviderError
from anoint_checkout.orders.models import OrderData
from anoint_checkout.payments.methods import PaymentMethod, Protocol
from anoint_checkout.payments.models import CryptoPaymentDetails, PaymentResult, PaymentStatus
from .base import PaymentProvider

# module anoint_checkout.payments.providers.fake
class FakeProvider(PaymentProvider):
    """
    Comportement par défaut selon le protocole:
    - card: succès immédiat
    - redirect-wallet: pending + redirect_url, capture réussie
    - crypto-asset: pending + CryptoPaymentDetails (adresse fraîche à chaque appel)
    configure(...) permet de simuler un refus, une panne ou des confirmations.
    """

    def __init__(self, protocol: Protocol = Protocol.CARD, *, ttl_minutes: int = 60):
        self.protocol = protocol
        self.ttl_minutes = ttl_minutes
        self.calls: List[Dict[str, Any]] = []
        self._sequence = count(1)
        self._decline: Optional[str] = None
        self._error: Optional[Exception] = None
        self._confirmations: Dict[str, int] = {}
        self._status_error: Optional[Exception] = None
        self._status_failure: Optional[str] = None
        self._expires_at: Optional[datetime] = None
        self._webhook_valid = True

    def configure(
        self,
        *,
        decline: Optional[str] = None,
        error: Optional[Exception] = None,
        status_error: Optional[Exception] = None,
        status_failure: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        webhook_valid: bool = True,
    ) -> None:
        self._decline = decline
        self._error = error
        self._status_error = status_error
        self._status_failure = status_failure
        self._expires_at = expires_at
        self._webhook_valid = webhook_valid

    def set_confirmations(self, payment_id: str, confirmations: int) -> None:
        self._confirmations[payment_id] = confirmations

    def reset(self) -> None:
        self.calls.clear()
        self._confirmations.clear()
        self.configure()

    async def charge(self, order: OrderData, method: PaymentMethod, **params: Any) -> PaymentResult:
        self.calls.append({"op": "charge", "order_id": order.order_id, "attempt": order.attempt_key,
                           "method": method.id, "amount": order.total, **params})
        if self._error is not None:
            raise self._error
        if self._decline:
            return PaymentResult.failed(self._decline)
        ref = f"fake_{self.protocol.value}_{next(self._sequence)}"
        if self.protocol == Protocol.CARD:
            return PaymentResult.succeeded(ref)
        if self.protocol == Protocol.REDIRECT_WALLET:
            return PaymentResult.pending(ref, "Redirecting", redirect_url=f"https://wallet.example/approve/{ref}")
        expires_at = self._expires_at or datetime.now(timezone.utc) + timedelta(minutes=self.ttl_minutes)
        asset = method.asset_code or "BTC"
        details = CryptoPaymentDetails(
            payment_id=ref,
            currency=asset,
            address=f"addr-{ref}",
            amount=Decimal("0.00042"),
            expires_at=expires_at,
            confirmations=0,
            required_confirmations=1,
            payment_uri=f"{asset.lower()}:addr-{ref}?amount=0.00042",
        )
        self._confirmations.setdefault(ref, 0)
        return PaymentResult.pending(ref, "Awaiting blockchain confirmation", crypto=details)

    async def capture(self, provider_order_id: str) -> PaymentResult:
        self.calls.append({"op": "capture", "reference": provider_order_id})
        if self._decline:
            return PaymentResult.failed(self._decline, transaction_id=provider_order_id)
        return PaymentResult.succeeded(f"capture_{provider_order_id}")

    async def verify_webhook(self, headers: Dict[str, str], event: Dict[str, Any]) -> bool:
        self.calls.append({"op": "verify_webhook", "event_type": event.get("event_type")})
        return self._webhook_valid

    async def get_status(self, reference: str) -> PaymentResult:
        self.calls.append({"op": "get_status", "reference": reference})
        if self._status_error is not None:
            raise self._status_error
        if self._status_failure:
            return PaymentResult.failed(self._status_failure, transaction_id=reference)
        if reference not in self._confirmations:
            if self.protocol == Protocol.CRYPTO_ASSET:
                raise ProviderError("Unknown payment")
            return PaymentResult.succeeded(reference)
        observed = self._confirmations[reference]
        details = CryptoPaymentDetails(
            payment_id=reference,
            currency="BTC",
            address=f"addr-{reference}",
            amount=Decimal("0.00042"),
            expires_at=self._expires_at or datetime.now(timezone.utc) + timedelta(minutes=self.ttl_minutes),
            confirmations=observed,
            required_confirmations=1,
        )
        status = PaymentStatus.SUCCEEDED if observed >= 1 else PaymentStatus.PENDING
        return PaymentResult(True, status, "fake status", reference, crypto=details)
