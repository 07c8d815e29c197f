"""
Middlewares transverses du service de checkout.
- register_basic_middlewares: CORS (front boutique) et hôtes de confiance.
- register_security_middleware: en-têtes de sécurité, no-store sur les routes de paiement.
"""
from fastapi import Request, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware
from anoint_checkout.config import CORS_ORIGINS, ALLOWED_HOSTS

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "no-referrer",
}
# Totaux, client secrets et adresses de dépôt: jamais en cache
NO_STORE_PREFIXES = ("/api/v1/checkout", "/api/v1/payments")

def _trusted_hosts() -> list:
    if "*" in CORS_ORIGINS:
        return ALLOWED_HOSTS + ["*"]
    return ALLOWED_HOSTS

# module anoint_checkout.app_setup.middlewares
def register_basic_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=_trusted_hosts())

def register_security_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def checkout_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.url.path.startswith(NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"
        return response
