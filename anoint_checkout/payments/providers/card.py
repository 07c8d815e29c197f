"""
Adaptateur Stripe (rail carte): centralise les appels et la configuration Stripe.
"""
import logging
from typing import Any, Dict, Optional

import stripe
from starlette.concurrency import run_in_threadpool

from anoint_checkout.config import (
    BASE_URL,
    CHECKOUT_CANCEL_PATH,
    CHECKOUT_SUCCESS_PATH,
    STRIPE_SECRET_KEY,
)
from anoint_checkout.errors import ProviderError, ProviderUnavailableError
from anoint_checkout.orders.models import OrderData
from anoint_checkout.payments.methods import PaymentMethod, Protocol
from anoint_checkout.payments.models import PaymentResult
from anoint_checkout.utils.money import to_minor_units
from .base import PaymentProvider, field_of

logger = logging.getLogger(__name__)

# module anoint_checkout.payments.providers.card
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY.
    - Soulève ProviderError si la clé est absente (configuration serveur).
    """
    if not STRIPE_SECRET_KEY:
        raise ProviderError("Card payments are not configured")
    stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def _intent_result(intent: Any) -> PaymentResult:
    intent_id = field_of(intent, "id")
    status = field_of(intent, "status")
    if status == "succeeded":
        return PaymentResult.succeeded(intent_id)
    if status in ("requires_action", "processing"):
        return PaymentResult.pending(
            intent_id, "Additional authentication required", client_secret=field_of(intent, "client_secret")
        )
    return PaymentResult.failed("Your card payment could not be completed", transaction_id=intent_id)


class StripeCardProvider(PaymentProvider):
    protocol = Protocol.CARD

    async def charge(
        self,
        order: OrderData,
        method: PaymentMethod,
        *,
        payment_method_id: Optional[str] = None,
        customer_email: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        **_: Any,
    ) -> PaymentResult:
        """
        - payment_method_id fourni: PaymentIntent confirmé immédiatement (résultat synchrone).
        - sinon: session Checkout, le client est redirigé (résultat pending).
        - metadata.orderId permet au webhook de retrouver la commande.
        """
        require_stripe()
        metadata = {"orderId": order.order_id}
        amount = to_minor_units(order.total)
        email = customer_email or order.customer.get("email")
        try:
            if payment_method_id:
                intent = await run_in_threadpool(
                    stripe.PaymentIntent.create,
                    amount=amount,
                    currency=order.currency.lower(),
                    payment_method=payment_method_id,
                    confirm=True,
                    receipt_email=email,
                    metadata=metadata,
                    automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                    idempotency_key=f"{order.attempt_key}-intent",
                )
                return _intent_result(intent)

            success = success_url or BASE_URL + CHECKOUT_SUCCESS_PATH.format(order_id=order.order_id)
            cancel = cancel_url or BASE_URL + CHECKOUT_CANCEL_PATH
            session = await run_in_threadpool(
                stripe.checkout.Session.create,
                mode="payment",
                payment_method_types=["card"],
                line_items=[{
                    "quantity": 1,
                    "price_data": {
                        "currency": order.currency.lower(),
                        "unit_amount": amount,
                        "product_data": {"name": f"Order {order.order_id}"},
                    },
                }],
                customer_email=email,
                success_url=success,
                cancel_url=cancel,
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                idempotency_key=f"{order.attempt_key}-session",
            )
            return PaymentResult.pending(
                field_of(session, "id"), "Redirecting to secure checkout", redirect_url=field_of(session, "url")
            )
        except stripe.CardError as e:
            logger.info("payments.card declined order_id=%s code=%s", order.order_id, getattr(e, "code", None))
            return PaymentResult.failed(getattr(e, "user_message", None) or "Your card was declined")
        except stripe.APIConnectionError as e:
            logger.exception("payments.card connection error order_id=%s", order.order_id)
            raise ProviderUnavailableError("Card payment provider is temporarily unavailable") from e
        except stripe.StripeError as e:
            logger.exception("payments.card provider error order_id=%s", order.order_id)
            raise ProviderError("Card payment provider error") from e

    async def get_status(self, reference: str) -> PaymentResult:
        """reference: id de session Checkout (cs_...) ou de PaymentIntent (pi_...)."""
        require_stripe()
        try:
            if reference.startswith("cs_"):
                session = await run_in_threadpool(stripe.checkout.Session.retrieve, reference)
                if field_of(session, "payment_status") == "paid":
                    return PaymentResult.succeeded(field_of(session, "payment_intent") or reference)
                if field_of(session, "status") == "expired":
                    return PaymentResult.failed("Checkout session expired", transaction_id=reference)
                return PaymentResult.pending(reference, "Awaiting payment", redirect_url=field_of(session, "url"))
            intent = await run_in_threadpool(stripe.PaymentIntent.retrieve, reference)
            return _intent_result(intent)
        except stripe.APIConnectionError as e:
            raise ProviderUnavailableError("Card payment provider is temporarily unavailable") from e
        except stripe.StripeError as e:
            logger.exception("payments.card status lookup failed reference=%s", reference)
            raise ProviderError("Unable to retrieve card payment status") from e


def describe_reference(result: PaymentResult) -> Dict[str, Any]:
    """Champs de réponse propres au rail carte: sessionId/checkoutUrl ou paymentIntentId/clientSecret."""
    ref = result.transaction_id or ""
    if ref.startswith("cs_"):
        return {"sessionId": ref, "checkoutUrl": result.redirect_url}
    return {"paymentIntentId": ref or None, "clientSecret": result.client_secret}
