"""
Adaptateur PayPal (rail wallet à redirection) via l'API REST v2, appels httpx directs.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from anoint_checkout.config import (
    BASE_URL,
    CHECKOUT_CANCEL_PATH,
    CHECKOUT_SUCCESS_PATH,
    PAYPAL_API_URL,
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
    PAYPAL_WEBHOOK_ID,
    PROVIDER_TIMEOUT_SECONDS,
)
from anoint_checkout.errors import ProviderError, ProviderUnavailableError
from anoint_checkout.orders.models import OrderData
from anoint_checkout.payments.methods import PaymentMethod, Protocol
from anoint_checkout.payments.models import PaymentResult
from anoint_checkout.utils.money import format_money
from .base import PaymentProvider

logger = logging.getLogger(__name__)

# module anoint_checkout.payments.providers.wallet
class PayPalWalletProvider(PaymentProvider):
    protocol = Protocol.REDIRECT_WALLET

    def __init__(
        self,
        base_url: str = PAYPAL_API_URL,
        client_id: str = PAYPAL_CLIENT_ID,
        client_secret: str = PAYPAL_CLIENT_SECRET,
        webhook_id: str = PAYPAL_WEBHOOK_ID,
        timeout: float = PROVIDER_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.webhook_id = webhook_id
        self.timeout = timeout
        self.transport = transport

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self.client_id or not self.client_secret:
            raise ProviderError("PayPal is not configured")
        try:
            async with self._http() as client:
                token_res = await client.post(
                    "/v1/oauth2/token",
                    auth=(self.client_id, self.client_secret),
                    data={"grant_type": "client_credentials"},
                    headers={"Accept": "application/json"},
                )
                if token_res.status_code != 200:
                    logger.error("payments.wallet oauth failed status=%s", token_res.status_code)
                    raise ProviderError("PayPal authentication failed")
                try:
                    access_token = _json(token_res)["access_token"]
                except (KeyError, TypeError) as e:
                    raise ProviderError("PayPal authentication failed") from e
                headers = dict(kwargs.pop("headers", {}) or {})
                headers["Authorization"] = f"Bearer {access_token}"
                headers.setdefault("Content-Type", "application/json")
                res = await client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise ProviderUnavailableError("PayPal is temporarily unavailable") from e
        if res.status_code >= 500:
            logger.error("payments.wallet upstream error path=%s status=%s", path, res.status_code)
            raise ProviderUnavailableError("PayPal is temporarily unavailable")
        return res

    async def charge(
        self,
        order: OrderData,
        method: PaymentMethod,
        *,
        return_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        **_: Any,
    ) -> PaymentResult:
        """
        Crée une commande PayPal (intent CAPTURE) et renvoie le lien d'approbation.
        - PayPal-Request-Id = tentative courante: un double envoi ne crée pas deux commandes PayPal,
          une nouvelle tentative (après refus) en crée une nouvelle.
        - Résultat pending: la commande reste Processing jusqu'au retour ou au webhook.
        """
        body = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": order.order_id,
                "custom_id": order.order_id,
                "description": f"Anoint Array order {order.order_id}",
                "amount": {"currency_code": order.currency.upper(), "value": format_money(order.total)},
            }],
            "application_context": {
                "brand_name": "Anoint Array",
                "user_action": "PAY_NOW",
                "return_url": return_url or BASE_URL + CHECKOUT_SUCCESS_PATH.format(order_id=order.order_id),
                "cancel_url": cancel_url or BASE_URL + CHECKOUT_CANCEL_PATH,
            },
        }
        res = await self._request(
            "POST", "/v2/checkout/orders", json=body, headers={"PayPal-Request-Id": order.attempt_key}
        )
        if res.status_code >= 400:
            logger.warning("payments.wallet order rejected order_id=%s status=%s", order.order_id, res.status_code)
            return PaymentResult.failed("PayPal could not create the payment")
        data = _json(res)
        approve = next(
            (l.get("href") for l in data.get("links") or [] if l.get("rel") in ("approve", "payer-action")),
            None,
        )
        if not approve:
            raise ProviderError("PayPal did not return an approval link")
        return PaymentResult.pending(data.get("id"), "Redirecting to PayPal", redirect_url=approve)

    async def capture(self, provider_order_id: str) -> PaymentResult:
        """Capture après approbation (retour navigateur ou webhook CHECKOUT.ORDER.APPROVED)."""
        res = await self._request(
            "POST",
            f"/v2/checkout/orders/{provider_order_id}/capture",
            headers={"PayPal-Request-Id": f"capture-{provider_order_id}"},
        )
        data = _json(res) if res.content else {}
        if res.status_code >= 400:
            issue = ((data.get("details") or [{}])[0] or {}).get("issue")
            if issue == "ORDER_ALREADY_CAPTURED":
                return PaymentResult.succeeded(provider_order_id, "Payment already captured")
            return PaymentResult.failed("PayPal payment was not completed", transaction_id=provider_order_id)
        if data.get("status") == "COMPLETED":
            return PaymentResult.succeeded(_capture_id(data) or provider_order_id)
        return PaymentResult.failed("PayPal payment was not completed", transaction_id=provider_order_id)

    async def get_status(self, reference: str) -> PaymentResult:
        res = await self._request("GET", f"/v2/checkout/orders/{reference}")
        if res.status_code == 404:
            return PaymentResult.failed("Unknown PayPal order", transaction_id=reference)
        data = _json(res)
        status = data.get("status")
        if status == "COMPLETED":
            return PaymentResult.succeeded(_capture_id(data) or reference)
        if status == "VOIDED":
            return PaymentResult.failed("PayPal order was voided", transaction_id=reference)
        return PaymentResult.pending(reference, f"PayPal order {str(status or 'CREATED').lower()}")

    async def verify_webhook(self, headers: Dict[str, str], event: Dict[str, Any]) -> bool:
        """Vérifie la signature d'un webhook via /v1/notifications/verify-webhook-signature."""
        if not self.webhook_id:
            raise ProviderError("PayPal webhook verification is not configured")
        body = {
            "auth_algo": headers.get("paypal-auth-algo"),
            "cert_url": headers.get("paypal-cert-url"),
            "transmission_id": headers.get("paypal-transmission-id"),
            "transmission_sig": headers.get("paypal-transmission-sig"),
            "transmission_time": headers.get("paypal-transmission-time"),
            "webhook_id": self.webhook_id,
            "webhook_event": event,
        }
        res = await self._request("POST", "/v1/notifications/verify-webhook-signature", json=body)
        if res.status_code >= 400:
            return False
        return _json(res).get("verification_status") == "SUCCESS"


def _capture_id(data: Dict[str, Any]) -> Optional[str]:
    for unit in data.get("purchase_units") or []:
        for capture in (unit.get("payments") or {}).get("captures") or []:
            if capture.get("id"):
                return capture["id"]
    return None

def _json(res: httpx.Response) -> Dict[str, Any]:
    try:
        data = res.json()
    except ValueError as e:
        logger.error("payments.wallet non-JSON reply status=%s", res.status_code)
        raise ProviderError("PayPal returned an invalid response") from e
    if not isinstance(data, dict):
        raise ProviderError("PayPal returned an invalid response")
    return data
