"""
Diagnostic de dépendances du checkout: base Supabase (tables orders / cart_items)
et configuration des fournisseurs de paiement. Aucun appel fournisseur n'est émis.
"""
import logging
import socket
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from anoint_checkout import config
from anoint_checkout.infra.supabase_client import get_service_supabase

logger = logging.getLogger(__name__)

TABLES = ("orders", "cart_items")

# module anoint_checkout.health.service
def _resolve(hostname: Optional[str]) -> Dict[str, Any]:
    if not hostname:
        return {"ok": None, "error": None}
    try:
        socket.getaddrinfo(hostname, 443)
    except OSError as e:
        return {"ok": False, "error": str(e)}
    return {"ok": True, "error": None}

def _check_table(client, name: str) -> Dict[str, Any]:
    try:
        res = client.table(name).select("*").limit(1).execute()
    except Exception as e:
        logger.warning("health.table %s unreachable: %s", name, e)
        return {"ok": False, "error": str(e)}
    return {"ok": True, "rows": len(res.data or [])}

def providers_configured() -> Dict[str, bool]:
    """Rails de paiement utilisables (clés présentes), sans divulguer les valeurs."""
    return {
        "card": bool(config.STRIPE_SECRET_KEY),
        "cardWebhook": bool(config.STRIPE_WEBHOOK_SECRET),
        "wallet": bool(config.PAYPAL_CLIENT_ID and config.PAYPAL_CLIENT_SECRET),
        "crypto": bool(config.NOWPAYMENTS_API_KEY),
        "cryptoIpn": bool(config.NOWPAYMENTS_IPN_SECRET),
        "carrierApi": bool(config.CARRIER_RATES_URL),
    }

def health_supabase_info() -> Dict[str, Any]:
    hostname = urlparse(config.SUPABASE_URL).hostname if config.SUPABASE_URL else None
    dns = _resolve(hostname)
    info: Dict[str, Any] = {
        "supabase_url": config.SUPABASE_URL,
        "hostname": hostname,
        "dns_ok": dns["ok"],
        "dns_error": dns["error"],
        "order_store": config.ORDER_STORE,
        "providers": providers_configured(),
        "connect_ok": False,
        "error": None,
        "tables": {},
    }
    try:
        client = get_service_supabase()
    except Exception as e:
        info["error"] = str(e)
        return info
    info["tables"] = {name: _check_table(client, name) for name in TABLES}
    info["connect_ok"] = True
    return info
