"""
WebhookReconciler: traite les callbacks fournisseurs indépendamment du navigateur.

- Signature vérifiée avant toute lecture du payload (jamais de traitement partiel).
- Succès: même transition gardée que le poller (Processing/CryptoPending -> Succeeded), au plus une fois.
- Rejeu d'un événement déjà appliqué: no-op, réponse 2xx.
- Commande inconnue: journalisée puis acquittée (2xx), sans effet.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from anoint_checkout import config
from anoint_checkout.errors import InvalidSignatureError, ValidationError
from anoint_checkout.orders.models import OrderStatus
from anoint_checkout.payments.methods import Protocol
from anoint_checkout.payments.providers.crypto import (
    EXPIRED,
    FAILED,
    PROCESSING,
    SUCCEEDED,
    map_payment_status,
)
from .signatures import NO_SIGNATURE, verify_nowpayments_ipn, verify_stripe_event

logger = logging.getLogger(__name__)

APPLIED = "applied"
NOOP = "noop"
IGNORED = "ignored"
PENDING = "pending"
UNKNOWN_ORDER = "unknown_order"

# module anoint_checkout.webhooks.service
@dataclass(frozen=True)
class ReconciliationOutcome:
    result: str
    order_id: Optional[str] = None
    event_type: Optional[str] = None
    order_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result,
            "orderId": self.order_id,
            "eventType": self.event_type,
            "orderStatus": self.order_status,
        }


def _get(obj: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


class WebhookReconciler:
    def __init__(self, orchestrator, *, stripe_secret: Optional[str] = None, ipn_secret: Optional[str] = None):
        self.orchestrator = orchestrator
        self.stripe_secret = stripe_secret if stripe_secret is not None else config.STRIPE_WEBHOOK_SECRET
        self.ipn_secret = ipn_secret if ipn_secret is not None else config.NOWPAYMENTS_IPN_SECRET

    def _status_of(self, order_id: str) -> Optional[str]:
        order = self.orchestrator.repo.get(order_id)
        return order.status.value if order else None

    def _apply_success(self, order_id: Optional[str], transaction_id: Optional[str],
                       event_type: str, source: str) -> ReconciliationOutcome:
        if not order_id:
            logger.warning("webhooks.%s missing order id event=%s", source, event_type)
            return ReconciliationOutcome(IGNORED, None, event_type)
        if self.orchestrator.repo.get(order_id) is None:
            logger.warning("webhooks.%s unknown order order_id=%s event=%s", source, order_id, event_type)
            return ReconciliationOutcome(UNKNOWN_ORDER, order_id, event_type)
        updated = self.orchestrator.mark_succeeded(order_id, transaction_id=transaction_id, source=f"webhook:{source}")
        result = APPLIED if updated is not None else NOOP
        logger.info("webhooks.%s success order_id=%s result=%s", source, order_id, result)
        return ReconciliationOutcome(result, order_id, event_type, self._status_of(order_id))

    def _apply_failure(self, order_id: Optional[str], reason: str,
                       event_type: str, source: str) -> ReconciliationOutcome:
        if not order_id:
            return ReconciliationOutcome(IGNORED, None, event_type)
        if self.orchestrator.repo.get(order_id) is None:
            logger.warning("webhooks.%s unknown order order_id=%s event=%s", source, order_id, event_type)
            return ReconciliationOutcome(UNKNOWN_ORDER, order_id, event_type)
        updated = self.orchestrator.mark_failed(order_id, reason)
        result = APPLIED if updated is not None else NOOP
        logger.info("webhooks.%s failure order_id=%s result=%s", source, order_id, result)
        return ReconciliationOutcome(result, order_id, event_type, self._status_of(order_id))

    # --- Carte (Stripe) --------------------------------------------------
    def handle_card(self, payload: bytes, signature: Optional[str]) -> ReconciliationOutcome:
        event = verify_stripe_event(payload, signature, self.stripe_secret)
        event_type = event.get("type") or ""
        obj = _get(event, "data", "object") or {}
        order_id = _get(obj, "metadata", "orderId")

        if event_type == "payment_intent.succeeded":
            return self._apply_success(order_id, obj.get("id"), event_type, "card")
        if event_type in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
            if obj.get("payment_status") != "paid":
                logger.info("webhooks.card session not paid yet order_id=%s", order_id)
                return ReconciliationOutcome(PENDING, order_id, event_type)
            return self._apply_success(order_id, obj.get("payment_intent") or obj.get("id"), event_type, "card")
        if event_type == "payment_intent.payment_failed":
            reason = _get(obj, "last_payment_error", "message") or "Card payment failed"
            return self._apply_failure(order_id, reason, event_type, "card")
        if event_type in ("checkout.session.async_payment_failed", "checkout.session.expired"):
            return self._apply_failure(order_id, "Card checkout was not completed", event_type, "card")
        if event_type == "payment_intent.requires_action":
            logger.info("webhooks.card requires_action order_id=%s", order_id)
        return ReconciliationOutcome(IGNORED, order_id, event_type)

    # --- Crypto (NOWPayments IPN) ---------------------------------------
    def handle_crypto(self, payload: bytes, signature: Optional[str]) -> ReconciliationOutcome:
        data = verify_nowpayments_ipn(payload, signature, self.ipn_secret)
        status = (data.get("payment_status") or "").lower()
        event_type = f"payment.{status or 'unknown'}"
        order_id = data.get("order_id")
        payment_id = str(data.get("payment_id") or "")
        if not order_id:
            return ReconciliationOutcome(IGNORED, None, event_type)

        order = self.orchestrator.repo.get(order_id)
        if order is None:
            logger.warning("webhooks.crypto unknown order order_id=%s", order_id)
            return ReconciliationOutcome(UNKNOWN_ORDER, order_id, event_type)
        if order.crypto is not None and payment_id and order.crypto.payment_id != payment_id:
            logger.warning("webhooks.crypto stale payment order_id=%s payment_id=%s", order_id, payment_id)
            return ReconciliationOutcome(IGNORED, order_id, event_type, order.status.value)

        outcome = map_payment_status(status)
        if outcome == SUCCEEDED:
            return self._apply_success(order_id, payment_id or None, event_type, "crypto")
        if outcome == FAILED:
            return self._apply_failure(order_id, f"Crypto payment {status}", event_type, "crypto")
        if outcome == EXPIRED:
            updated = self.orchestrator.expire(order_id, reason="Crypto payment expired", force=True)
            return ReconciliationOutcome(APPLIED if updated else NOOP, order_id, event_type, self._status_of(order_id))
        if outcome == PROCESSING and data.get("confirmations") is not None:
            self.orchestrator.record_confirmations(order_id, int(data["confirmations"]))
        return ReconciliationOutcome(PENDING, order_id, event_type, self._status_of(order_id))

    # --- Wallet (PayPal) -------------------------------------------------
    async def handle_wallet(self, payload: bytes, headers: Mapping[str, str]) -> ReconciliationOutcome:
        headers = {k.lower(): v for k, v in headers.items()}
        if not headers.get("paypal-transmission-sig"):
            raise InvalidSignatureError(NO_SIGNATURE)
        try:
            event = json.loads(payload)
        except ValueError as e:
            raise InvalidSignatureError("Invalid payload") from e
        provider = self.orchestrator.provider_for(Protocol.REDIRECT_WALLET)
        if not await provider.verify_webhook(headers, event):
            raise InvalidSignatureError("Invalid signature")

        event_type = event.get("event_type") or ""
        resource = event.get("resource") or {}
        units = resource.get("purchase_units") or [{}]
        order_id = resource.get("custom_id") or units[0].get("custom_id") or units[0].get("reference_id")

        if event_type == "CHECKOUT.ORDER.APPROVED":
            order = self.orchestrator.repo.get(order_id) if order_id else None
            if order is None:
                logger.warning("webhooks.wallet unknown order order_id=%s", order_id)
                return ReconciliationOutcome(UNKNOWN_ORDER, order_id, event_type)
            if order.status != OrderStatus.PROCESSING:
                return ReconciliationOutcome(NOOP, order_id, event_type, order.status.value)
            try:
                updated = await self.orchestrator.capture_wallet(order_id, resource.get("id"))
            except ValidationError as e:
                logger.warning("webhooks.wallet capture skipped order_id=%s reason=%s", order_id, e.message)
                return ReconciliationOutcome(NOOP, order_id, event_type, self._status_of(order_id))
            result = APPLIED if updated.status == OrderStatus.SUCCEEDED else NOOP
            return ReconciliationOutcome(result, order_id, event_type, updated.status.value)
        if event_type == "PAYMENT.CAPTURE.COMPLETED":
            return self._apply_success(order_id, resource.get("id"), event_type, "wallet")
        if event_type in ("PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED"):
            return self._apply_failure(order_id, "PayPal payment was declined", event_type, "wallet")
        return ReconciliationOutcome(IGNORED, order_id, event_type)


def get_reconciler() -> WebhookReconciler:
    from anoint_checkout.orders.service import get_orchestrator
    return WebhookReconciler(get_orchestrator())
