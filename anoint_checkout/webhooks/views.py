import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse

from anoint_checkout.errors import CheckoutError
from anoint_checkout.webhooks import service as webhooks_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])

def _liveness(name: str) -> dict:
    return {
        "message": f"{name} webhook endpoint is active",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

# module anoint_checkout.webhooks.views
@router.post("/card", include_in_schema=False)
async def webhook_card(request: Request):
    """
    Webhook Stripe.
    - Signature: en-tête stripe-signature obligatoire (400 "No signature found"), validée avant traitement
    - Réponses: {"status": "ok", "result": applied|noop|ignored|pending|unknown_order, ...}
    - Erreurs: 400 signature invalide, 500 secret absent ou erreur inattendue (le fournisseur relivrera)
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        outcome = webhooks_service.get_reconciler().handle_card(payload, signature)
    except CheckoutError:
        raise
    except Exception:
        logger.exception("Erreur webhook_card")
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return JSONResponse({"status": "ok", **outcome.to_dict()})

@router.get("/card")
async def webhook_card_liveness():
    return _liveness("Card")

@router.post("/crypto", include_in_schema=False)
async def webhook_crypto(request: Request):
    """IPN NOWPayments, signé HMAC-SHA512 (en-tête x-nowpayments-sig)."""
    payload = await request.body()
    signature = request.headers.get("x-nowpayments-sig")
    try:
        outcome = webhooks_service.get_reconciler().handle_crypto(payload, signature)
    except CheckoutError:
        raise
    except Exception:
        logger.exception("Erreur webhook_crypto")
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return JSONResponse({"status": "ok", **outcome.to_dict()})

@router.get("/crypto")
async def webhook_crypto_liveness():
    return _liveness("Crypto")

@router.post("/wallet", include_in_schema=False)
async def webhook_wallet(request: Request):
    """Webhook PayPal, vérifié via l'API verify-webhook-signature."""
    payload = await request.body()
    try:
        outcome = await webhooks_service.get_reconciler().handle_wallet(payload, dict(request.headers))
    except CheckoutError:
        raise
    except Exception:
        logger.exception("Erreur webhook_wallet")
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return JSONResponse({"status": "ok", **outcome.to_dict()})

@router.get("/wallet")
async def webhook_wallet_liveness():
    return _liveness("Wallet")
