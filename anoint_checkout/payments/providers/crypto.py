"""
Adaptateur NOWPayments (rail crypto): création du paiement, lecture du statut.
"""
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

import httpx

from anoint_checkout.config import (
    BASE_URL,
    CRYPTO_PAYMENT_TTL_MINUTES,
    NOWPAYMENTS_API_KEY,
    NOWPAYMENTS_API_URL,
    PROVIDER_TIMEOUT_SECONDS,
)
from anoint_checkout.errors import ProviderError, ProviderUnavailableError
from anoint_checkout.orders.models import OrderData
from anoint_checkout.payments.methods import PaymentMethod, Protocol
from anoint_checkout.payments.models import CryptoPaymentDetails, PaymentResult, PaymentStatus
from anoint_checkout.utils.money import format_money
from .base import PaymentProvider

logger = logging.getLogger(__name__)

REQUIRED_CONFIRMATIONS: Dict[str, int] = {"BTC": 1, "ETH": 1, "LTC": 1}
URI_SCHEMES: Dict[str, str] = {"BTC": "bitcoin", "ETH": "ethereum", "LTC": "litecoin"}

# Statuts NOWPayments -> issue côté commande
SUCCEEDED = "succeeded"
PROCESSING = "processing"
PENDING = "pending"
FAILED = "failed"
EXPIRED = "expired"

STATUS_MAP: Dict[str, str] = {
    "finished": SUCCEEDED,
    "confirmed": SUCCEEDED,
    "confirming": PROCESSING,
    "sending": PROCESSING,
    "waiting": PENDING,
    "partially_paid": PENDING,
    "failed": FAILED,
    "refunded": FAILED,
    "expired": EXPIRED,
}

# module anoint_checkout.payments.providers.crypto
def _json(res: httpx.Response) -> Dict[str, Any]:
    try:
        data = res.json()
    except ValueError as e:
        logger.error("payments.crypto non-JSON reply status=%s", res.status_code)
        raise ProviderError("Crypto payment provider returned an invalid response") from e
    if not isinstance(data, dict):
        raise ProviderError("Crypto payment provider returned an invalid response")
    return data

def map_payment_status(status: Optional[str]) -> str:
    return STATUS_MAP.get((status or "").lower(), PENDING)

def _parse_expiry(value: Any, now: datetime) -> datetime:
    if value:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            logger.warning("payments.crypto unparseable expiration=%s", value)
    return now + timedelta(minutes=CRYPTO_PAYMENT_TTL_MINUTES)


class NowPaymentsCryptoProvider(PaymentProvider):
    protocol = Protocol.CRYPTO_ASSET

    def __init__(
        self,
        base_url: str = NOWPAYMENTS_API_URL,
        api_key: str = NOWPAYMENTS_API_KEY,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport
        self.clock = clock

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.api_key:
            raise ProviderError("Crypto payments are not configured")
        headers = {"x-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                res = await client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise ProviderUnavailableError("Crypto payment provider is temporarily unavailable") from e
        if res.status_code >= 500:
            logger.error("payments.crypto upstream error path=%s status=%s", path, res.status_code)
            raise ProviderUnavailableError("Crypto payment provider is temporarily unavailable")
        return res

    async def charge(self, order: OrderData, method: PaymentMethod, **_: Any) -> PaymentResult:
        """
        Crée un paiement NOWPayments: adresse de dépôt fraîche pour chaque tentative.
        - Montant crypto en Decimal (jamais float).
        - Expiration: expiration_estimate_date, sinon TTL configuré.
        """
        asset = (method.asset_code or "").upper()
        body = {
            "price_amount": format_money(order.total),
            "price_currency": order.currency.lower(),
            "pay_currency": asset.lower(),
            "order_id": order.order_id,
            "order_description": f"Anoint Array order {order.order_id}",
            "ipn_callback_url": f"{BASE_URL}/api/v1/webhooks/crypto",
        }
        res = await self._request("POST", "/payment", json=body)
        if res.status_code >= 400:
            logger.warning("payments.crypto rejected order_id=%s status=%s body=%s",
                           order.order_id, res.status_code, res.text[:300])
            return PaymentResult.failed("Crypto payment request was rejected")
        data = _json(res)
        try:
            amount = Decimal(str(data["pay_amount"]))
            address = data["pay_address"]
            payment_id = str(data["payment_id"])
        except (KeyError, TypeError, InvalidOperation) as e:
            raise ProviderError("Crypto payment provider returned an invalid payment") from e
        scheme = URI_SCHEMES.get(asset, asset.lower())
        details = CryptoPaymentDetails(
            payment_id=payment_id,
            currency=asset,
            address=address,
            amount=amount,
            expires_at=_parse_expiry(data.get("expiration_estimate_date"), self.clock()),
            confirmations=0,
            required_confirmations=REQUIRED_CONFIRMATIONS.get(asset, 1),
            network=data.get("network"),
            payment_uri=f"{scheme}:{address}?amount={amount}",
        )
        return PaymentResult.pending(payment_id, "Awaiting blockchain confirmation", crypto=details)

    async def get_status(self, reference: str) -> PaymentResult:
        """
        Statut d'un paiement. NOWPayments n'expose pas toujours le nombre de confirmations:
        finished/confirmed valent le seuil requis.
        """
        res = await self._request("GET", f"/payment/{reference}")
        if res.status_code >= 400:
            raise ProviderError("Unable to retrieve crypto payment status")
        try:
            return status_to_result(reference, _json(res))
        except (TypeError, ValueError, InvalidOperation) as e:
            raise ProviderError("Crypto payment provider returned an invalid status") from e


def status_to_result(payment_id: str, data: Dict[str, Any]) -> PaymentResult:
    """Convertit un statut (API ou IPN) en PaymentResult avec le nombre de confirmations observé."""
    status = (data.get("payment_status") or "").lower()
    outcome = map_payment_status(status)
    asset = (data.get("pay_currency") or "").upper()
    required = REQUIRED_CONFIRMATIONS.get(asset, 1)
    observed = data.get("confirmations")
    if observed is None:
        observed = required if outcome == SUCCEEDED else 0
    details = CryptoPaymentDetails(
        payment_id=payment_id,
        currency=asset,
        address=data.get("pay_address") or "",
        amount=Decimal(str(data.get("pay_amount") or "0")),
        expires_at=_parse_expiry(data.get("expiration_estimate_date"), datetime.now(timezone.utc)),
        confirmations=int(observed),
        required_confirmations=required,
        network=data.get("network"),
    )
    if outcome == SUCCEEDED:
        return PaymentResult(True, PaymentStatus.SUCCEEDED, "Payment confirmed", payment_id, crypto=details)
    if outcome in (FAILED, EXPIRED):
        return PaymentResult(False, PaymentStatus.FAILED, f"Payment {status}", payment_id, crypto=details)
    return PaymentResult(True, PaymentStatus.PENDING, f"Payment {status or 'waiting'}", payment_id, crypto=details)
