"""
ASGI entrypoint: expose `app` pour les process managers / déploiements.

- En production, un process manager (ex: gunicorn/uvicorn-workers) importe `anoint_checkout.asgi:app`.
- Toute la configuration FastAPI est centralisée dans anoint_checkout.app_setup.factory.
"""

from anoint_checkout.app_setup.factory import create_app

app = create_app()
