"""
Contrat commun des fournisseurs: PaymentResult et CryptoPaymentDetails.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

# module anoint_checkout.payments.models
class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class CryptoPaymentDetails:
    payment_id: str
    currency: str
    address: str
    amount: Decimal
    expires_at: datetime
    confirmations: int = 0
    required_confirmations: int = 1
    network: Optional[str] = None
    payment_uri: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def with_confirmations(self, observed: int) -> "CryptoPaymentDetails":
        # observé <= requis tant que la tentative est en attente
        return replace(self, confirmations=max(0, min(observed, self.required_confirmations)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paymentId": self.payment_id,
            "currency": self.currency,
            "address": self.address,
            "amount": str(self.amount),
            "expiresAt": self.expires_at.isoformat(),
            "confirmations": self.confirmations,
            "requiredConfirmations": self.required_confirmations,
            "network": self.network,
            "paymentUri": self.payment_uri,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CryptoPaymentDetails":
        return cls(
            payment_id=str(data["paymentId"]),
            currency=data["currency"],
            address=data["address"],
            amount=Decimal(str(data["amount"])),
            expires_at=datetime.fromisoformat(data["expiresAt"]),
            confirmations=int(data.get("confirmations") or 0),
            required_confirmations=int(data.get("requiredConfirmations") or 1),
            network=data.get("network"),
            payment_uri=data.get("paymentUri"),
        )


@dataclass(frozen=True)
class PaymentResult:
    success: bool
    status: PaymentStatus
    message: str = ""
    transaction_id: Optional[str] = None
    crypto: Optional[CryptoPaymentDetails] = None
    redirect_url: Optional[str] = None
    client_secret: Optional[str] = None

    @classmethod
    def succeeded(cls, transaction_id: str, message: str = "Payment succeeded") -> "PaymentResult":
        return cls(True, PaymentStatus.SUCCEEDED, message, transaction_id)

    @classmethod
    def failed(cls, message: str, transaction_id: Optional[str] = None) -> "PaymentResult":
        return cls(False, PaymentStatus.FAILED, message, transaction_id)

    @classmethod
    def pending(cls, transaction_id: Optional[str], message: str = "Payment pending", **extra) -> "PaymentResult":
        return cls(True, PaymentStatus.PENDING, message, transaction_id, **extra)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "transactionId": self.transaction_id,
        }
        if self.crypto is not None:
            data["cryptoDetails"] = self.crypto.to_dict()
        if self.redirect_url:
            data["redirectUrl"] = self.redirect_url
        if self.client_secret:
            data["clientSecret"] = self.client_secret
        return data
