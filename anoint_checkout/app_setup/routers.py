"""
Registre central des routers.
- API v1: checkout, shipping, payments, webhooks
- Admin: commandes
- Health
"""
from fastapi import FastAPI
from anoint_checkout.orders import views as orders_views
from anoint_checkout.shipping import views as shipping_views
from anoint_checkout.payments import views as payments_views
from anoint_checkout.webhooks import views as webhooks_views
from anoint_checkout.health.router import router as health_router

def register_routers(app: FastAPI) -> None:
    # API v1
    app.include_router(orders_views.router)
    app.include_router(shipping_views.router)
    app.include_router(payments_views.router)
    app.include_router(webhooks_views.router)
    # Admin
    app.include_router(orders_views.admin_router)
    # Health & monitoring
    app.include_router(health_router)
