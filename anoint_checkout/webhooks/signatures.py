"""
Vérification des signatures webhook, avant toute lecture métier du payload.
"""
import hashlib
import hmac
import json
from typing import Any, Dict, Optional

import stripe

from anoint_checkout.errors import InvalidSignatureError, ProviderError

NO_SIGNATURE = "No signature found"

# module anoint_checkout.webhooks.signatures
def verify_stripe_event(payload: bytes, sig_header: Optional[str], secret: str) -> Dict[str, Any]:
    """
    Valide l'en-tête Stripe-Signature via stripe.Webhook.construct_event.
    - En-tête absent: InvalidSignatureError("No signature found")
    - Secret absent: ProviderError (configuration serveur, 500)
    Retour: l'événement décodé (dict) une fois la signature validée.
    """
    if not sig_header:
        raise InvalidSignatureError(NO_SIGNATURE)
    if not secret:
        raise ProviderError("Webhook secret not configured")
    try:
        stripe.Webhook.construct_event(payload, sig_header, secret)
    except stripe.SignatureVerificationError as e:
        raise InvalidSignatureError("Invalid signature") from e
    except ValueError as e:
        raise InvalidSignatureError("Invalid payload") from e
    return json.loads(payload)

def nowpayments_signature(data: Dict[str, Any], secret: str) -> str:
    """HMAC-SHA512 du JSON trié (clés triées, séparateurs compacts), comme l'IPN NOWPayments."""
    message = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha512).hexdigest()

def verify_nowpayments_ipn(payload: bytes, signature: Optional[str], secret: str) -> Dict[str, Any]:
    if not signature:
        raise InvalidSignatureError(NO_SIGNATURE)
    if not secret:
        raise ProviderError("IPN secret not configured")
    try:
        data = json.loads(payload)
    except ValueError as e:
        raise InvalidSignatureError("Invalid payload") from e
    if not isinstance(data, dict):
        raise InvalidSignatureError("Invalid payload")
    expected = nowpayments_signature(data, secret)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise InvalidSignatureError("Invalid signature")
    return data
