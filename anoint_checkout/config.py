# anoint_checkout.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du service de checkout.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, PayPal, NOWPayments, transporteur)
- Expose les délais (timeouts, retries, polling crypto) et la devise du checkout
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name, "")) or default)
    except ValueError:
        return default

def _float_env(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name, "")) or default)
    except ValueError:
        return default

# Supabase: URLs et clés (public/anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

ADMIN_EMAILS = [e.strip() for e in os.getenv("ADMIN_EMAILS", "admin@example.com").split(",") if e.strip()]

# CORS (dev)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")

# Stripe: clés publiques/privées et secret webhook
STRIPE_PUBLIC_KEY = _clean_env(os.getenv("STRIPE_PUBLIC_KEY") or "")
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# PayPal (wallet redirect)
PAYPAL_CLIENT_ID = _clean_env(os.getenv("PAYPAL_CLIENT_ID") or "")
PAYPAL_CLIENT_SECRET = _clean_env(os.getenv("PAYPAL_CLIENT_SECRET") or "")
PAYPAL_ENVIRONMENT = _clean_env(os.getenv("PAYPAL_ENVIRONMENT") or "sandbox").lower()
PAYPAL_WEBHOOK_ID = _clean_env(os.getenv("PAYPAL_WEBHOOK_ID") or "")
PAYPAL_API_URL = (
    "https://api.paypal.com" if PAYPAL_ENVIRONMENT == "production" else "https://api.sandbox.paypal.com"
)

# NOWPayments (crypto)
NOWPAYMENTS_API_KEY = _clean_env(os.getenv("NOWPAYMENTS_API_KEY") or "")
NOWPAYMENTS_IPN_SECRET = _clean_env(os.getenv("NOWPAYMENTS_IPN_SECRET") or "")
NOWPAYMENTS_API_URL = _clean_env(os.getenv("NOWPAYMENTS_API_URL") or "https://api.nowpayments.io/v1").rstrip("/")

# Transporteur: API de tarifs (vide => table de tarifs interne)
CARRIER_RATES_URL = _clean_env(os.getenv("CARRIER_RATES_URL") or "")
CARRIER_API_KEY = _clean_env(os.getenv("CARRIER_API_KEY") or "")
SHIPPING_ORIGIN_POSTAL_CODE = _clean_env(os.getenv("SHIPPING_ORIGIN_POSTAL_CODE") or "M5V3A8")

# Checkout
CHECKOUT_CURRENCY = _clean_env(os.getenv("CHECKOUT_CURRENCY") or "CAD").upper()
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/checkout/success?order={order_id}")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/checkout?cancelled=1")

# Délais: appels fournisseurs, retries transporteur, polling crypto
PROVIDER_TIMEOUT_SECONDS = _float_env("PROVIDER_TIMEOUT_SECONDS", 15.0)
SHIPPING_RETRY_ATTEMPTS = _int_env("SHIPPING_RETRY_ATTEMPTS", 3)
SHIPPING_RETRY_BACKOFF_SECONDS = _float_env("SHIPPING_RETRY_BACKOFF_SECONDS", 0.5)
CRYPTO_POLL_INTERVAL_SECONDS = _float_env("CRYPTO_POLL_INTERVAL_SECONDS", 15.0)
CRYPTO_POLL_MAX_FAILURES = _int_env("CRYPTO_POLL_MAX_FAILURES", 10)
CRYPTO_PAYMENT_TTL_MINUTES = _int_env("CRYPTO_PAYMENT_TTL_MINUTES", 60)
CRYPTO_SWEEP_INTERVAL_SECONDS = _float_env("CRYPTO_SWEEP_INTERVAL_SECONDS", 60.0)

# Stockage des commandes: "memory" (dev/tests) ou "supabase"
ORDER_STORE = _clean_env(os.getenv("ORDER_STORE") or "memory").lower()
