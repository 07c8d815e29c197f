import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Type, TypeVar

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from anoint_checkout.errors import ValidationError
from anoint_checkout.orders import service as orders_service
from anoint_checkout.orders.models import OrderData
from anoint_checkout.payments.fees import fee_breakdown
from anoint_checkout.payments.methods import PaymentMethod, Protocol, registry
from anoint_checkout.payments.models import PaymentResult
from anoint_checkout.payments.providers import get_provider
from anoint_checkout.payments.providers.card import describe_reference
from anoint_checkout.utils.money import to_money

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

MISSING_PARAMS = "Missing required parameters"
INVALID_AMOUNT = "Invalid payment amount"

M = TypeVar("M", bound=BaseModel)


class _RailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Any
    currency: str = Field(min_length=1)
    order_id: str = Field(alias="orderId", min_length=1)
    terms_accepted: bool = Field(default=False, alias="termsAccepted")


class CardPaymentRequest(_RailRequest):
    customer_email: str = Field(alias="customerEmail", min_length=3)
    payment_method_id: Optional[str] = Field(default=None, alias="paymentMethodId")


class WalletPaymentRequest(_RailRequest):
    return_url: str = Field(alias="returnUrl", min_length=1)
    cancel_url: str = Field(alias="cancelUrl", min_length=1)


class CryptoPaymentRequest(_RailRequest):
    asset_code: str = Field(alias="assetCode", min_length=1)


class WalletCaptureRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)
    provider_order_id: str = Field(alias="providerOrderId", min_length=1)


async def _parse(model: Type[M], request: Request) -> M:
    """Corps JSON -> modèle pydantic; tout champ manquant ou mal typé donne 400 "Missing required parameters"."""
    try:
        body = await request.json()
        return model.model_validate(body)
    except (ValueError, PydanticValidationError):
        raise HTTPException(status_code=400, detail=MISSING_PARAMS)

def _checked_amount(raw: Any, method: PaymentMethod) -> Decimal:
    """Valide le montant sur les bornes du moyen de paiement, avant tout appel fournisseur."""
    if raw is None or raw == "":
        raise HTTPException(status_code=400, detail=MISSING_PARAMS)
    try:
        amount = to_money(raw)
    except ValidationError:
        raise HTTPException(status_code=400, detail=INVALID_AMOUNT)
    if amount <= 0 or amount < method.min_amount or amount > method.max_amount:
        raise HTTPException(status_code=400, detail=INVALID_AMOUNT)
    return amount

async def _submit(body: _RailRequest, method: PaymentMethod, amount: Decimal, **params: Any):
    """
    Sélectionne le moyen du rail si besoin puis confirme la commande via l'orchestrateur.
    - Devise différente de la commande: 400
    - Montant différent du total (frais inclus): 400 "Invalid payment amount"
    """
    orchestrator = orders_service.get_orchestrator()
    order = orchestrator.get_order(body.order_id)
    if body.currency.upper() != order.currency:
        raise HTTPException(status_code=400, detail="Unsupported currency")
    if order.method_id != method.id:
        orchestrator.select_method(order.order_id, method.id)
    return await orchestrator.confirm(
        order.order_id,
        terms_accepted=body.terms_accepted,
        expected_protocol=method.protocol,
        amount=amount,
        **params,
    )

def _base_response(order: OrderData, result: PaymentResult) -> Dict[str, Any]:
    return {
        "success": result.success,
        "status": result.status.value,
        "message": result.message,
        "orderId": order.order_id,
        "orderStatus": order.status.value,
        "failureReason": order.failure_reason,
    }

# module anoint_checkout.payments.views
@router.get("/methods")
def list_methods(amount: Optional[str] = None, hasPhysicalItems: bool = False):
    """
    Catalogue des moyens de paiement.
    - Avec ?amount=: ajoute la validation et le détail des frais pour ce montant.
    """
    total = None
    if amount is not None:
        try:
            total = to_money(amount)
        except ValidationError:
            raise HTTPException(status_code=400, detail=INVALID_AMOUNT)
    methods = []
    for method in registry.all():
        entry = method.to_dict()
        if total is not None:
            check = registry.validate(method.id, total, hasPhysicalItems)
            entry["valid"] = check.valid
            entry["reason"] = check.reason
            entry.update(fee_breakdown(total, method))
        methods.append(entry)
    return {"methods": methods}

@router.post("/card")
async def create_card_payment(request: Request):
    """
    Paiement carte (Stripe).
    - Entrée JSON: {amount, currency, orderId, customerEmail, paymentMethodId?, termsAccepted}
    - Sans paymentMethodId: session Checkout {sessionId, checkoutUrl}
    - Avec paymentMethodId: PaymentIntent confirmé {paymentIntentId, clientSecret}
    - Erreurs: 400 "Missing required parameters" / "Invalid payment amount", 500/503 fournisseur
    """
    body = await _parse(CardPaymentRequest, request)
    method = registry.by_protocol(Protocol.CARD)[0]
    amount = _checked_amount(body.amount, method)
    order, result = await _submit(
        body, method, amount,
        payment_method_id=body.payment_method_id,
        customer_email=body.customer_email,
    )
    return JSONResponse({**_base_response(order, result), **describe_reference(result)})

@router.get("/card")
async def get_card_payment(sessionId: Optional[str] = None, paymentIntentId: Optional[str] = None):
    """Statut côté fournisseur d'une session Checkout ou d'un PaymentIntent."""
    reference = sessionId or paymentIntentId
    if not reference:
        raise HTTPException(status_code=400, detail="sessionId or paymentIntentId is required")
    result = await get_provider(Protocol.CARD).get_status(reference)
    return {"reference": reference, **result.to_dict()}

@router.post("/wallet-redirect")
async def create_wallet_payment(request: Request):
    """
    Paiement wallet avec redirection (PayPal).
    - Réponse: redirectUrl; la commande reste Processing jusqu'au retour (capture) ou au webhook.
    """
    body = await _parse(WalletPaymentRequest, request)
    method = registry.by_protocol(Protocol.REDIRECT_WALLET)[0]
    amount = _checked_amount(body.amount, method)
    order, result = await _submit(
        body, method, amount, return_url=body.return_url, cancel_url=body.cancel_url
    )
    return JSONResponse({
        **_base_response(order, result),
        "providerOrderId": result.transaction_id,
        "redirectUrl": result.redirect_url,
    })

@router.post("/wallet-redirect/capture")
async def capture_wallet_payment(request: Request):
    """Retour navigateur après approbation: capture le paiement et résout la commande."""
    body = await _parse(WalletCaptureRequest, request)
    order = await orders_service.get_orchestrator().capture_wallet(body.order_id, body.provider_order_id)
    return {"success": order.status.value == "succeeded", "order": order.to_dict()}

@router.post("/crypto")
async def create_crypto_payment(request: Request):
    """
    Paiement crypto (NOWPayments).
    - Réponse: {success, paymentId, cryptoDetails{currency, address, amount, expiresAt, confirmations, requiredConfirmations}}
    - La commande passe CryptoPending et le poller de confirmations démarre.
    """
    body = await _parse(CryptoPaymentRequest, request)
    method = registry.by_asset(body.asset_code)
    if method is None:
        raise HTTPException(status_code=400, detail="unsupported method")
    amount = _checked_amount(body.amount, method)
    order, result = await _submit(body, method, amount)
    return JSONResponse({
        **_base_response(order, result),
        "paymentId": result.transaction_id,
        "cryptoDetails": result.crypto.to_dict() if result.crypto else None,
    })

@router.get("/crypto/{order_id}")
def get_crypto_payment(order_id: str):
    """Statut crypto de la commande (applique l'expiration si l'échéance est passée)."""
    order = orders_service.get_orchestrator().refresh_crypto_status(order_id)
    return {
        "orderId": order.order_id,
        "status": order.status.value,
        "failureReason": order.failure_reason,
        "cryptoDetails": order.crypto.to_dict() if order.crypto else None,
    }

@router.post("/crypto/{order_id}/cancel-polling")
def cancel_crypto_polling(order_id: str):
    """Le client quitte la page: arrête le polling; le webhook reste l'autorité pour le statut final."""
    orchestrator = orders_service.get_orchestrator()
    orchestrator.get_order(order_id)
    cancelled = orchestrator.poller.cancel(order_id) if orchestrator.poller is not None else False
    return {"orderId": order_id, "cancelled": cancelled}
