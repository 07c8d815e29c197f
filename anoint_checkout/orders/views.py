import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from anoint_checkout.cart import repository as cart_repository
from anoint_checkout.cart.service import parse_line_items
from anoint_checkout.orders import service as orders_service
from anoint_checkout.orders.models import OrderStatus
from anoint_checkout.shipping.models import ShippingAddress
from anoint_checkout.utils.security import require_admin

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[Dict[str, Any]] = Field(default_factory=list)
    customer: Dict[str, Any]
    cart_id: Optional[str] = Field(default=None, alias="cartId")
    shipping_address: Optional[Dict[str, Any]] = Field(default=None, alias="shippingAddress")
    billing_address: Optional[Dict[str, Any]] = Field(default=None, alias="billingAddress")
    shipping_rate_id: Optional[str] = Field(default=None, alias="shippingRateId")


class SelectMethodRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    method_id: str = Field(alias="methodId")


class RepriceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    shipping_rate_id: str = Field(alias="shippingRateId")


class ConfirmRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    terms_accepted: bool = Field(default=False, alias="termsAccepted")
    payment_method_id: Optional[str] = Field(default=None, alias="paymentMethodId")
    customer_email: Optional[str] = Field(default=None, alias="customerEmail")
    return_url: Optional[str] = Field(default=None, alias="returnUrl")
    cancel_url: Optional[str] = Field(default=None, alias="cancelUrl")

# module anoint_checkout.orders.views
@router.post("/orders")
async def create_order(body: CreateOrderRequest):
    """
    Crée la commande (Review) à partir du panier.
    - items: [{productId, title, unitPrice, quantity, productKind, weightKg?}]
    - items absent + cartId: lignes relues depuis le panier persisté (cart_items)
    - shippingAddress + shippingRateId obligatoires si le panier contient des articles physiques
    - Erreurs: 400 panier/adresse/tarif invalide, 503 transporteur indisponible
    """
    raw_items = body.items
    if not raw_items and body.cart_id:
        raw_items = cart_repository.fetch_cart_items(body.cart_id)
    items = parse_line_items(raw_items)
    shipping = ShippingAddress.from_payload(body.shipping_address) if body.shipping_address else None
    billing = ShippingAddress.from_payload(body.billing_address) if body.billing_address else None
    order = await orders_service.get_orchestrator().create_order(
        items,
        customer=body.customer,
        shipping_address=shipping,
        billing_address=billing,
        shipping_rate_id=body.shipping_rate_id,
        cart_id=body.cart_id,
    )
    return order.to_dict()

@router.get("/orders/{order_id}")
def get_order(order_id: str):
    return orders_service.get_orchestrator().get_order(order_id).to_dict()

@router.post("/orders/{order_id}/shipping")
async def reprice_order(order_id: str, body: RepriceRequest):
    order = await orders_service.get_orchestrator().reprice(order_id, body.shipping_rate_id)
    return order.to_dict()

@router.post("/orders/{order_id}/method")
def select_method(order_id: str, body: SelectMethodRequest):
    """Valide et retient le moyen de paiement; les frais sont ajoutés au total affiché."""
    return orders_service.get_orchestrator().select_method(order_id, body.method_id).to_dict()

@router.post("/orders/{order_id}/confirm")
async def confirm_order(order_id: str, body: ConfirmRequest):
    """
    Confirmation (conditions acceptées obligatoires): fige la commande et soumet le paiement
    au rail du moyen sélectionné. Retour: {order, payment}.
    """
    order, result = await orders_service.get_orchestrator().confirm(
        order_id,
        terms_accepted=body.terms_accepted,
        payment_method_id=body.payment_method_id,
        customer_email=body.customer_email,
        return_url=body.return_url,
        cancel_url=body.cancel_url,
    )
    return {"order": order.to_dict(), "payment": result.to_dict()}

@router.post("/orders/{order_id}/retry")
def retry_order(order_id: str):
    """Nouvelle tentative (sous-commande) après un échec ou une expiration."""
    return orders_service.get_orchestrator().retry(order_id).to_dict()

@admin_router.get("/orders")
def admin_list_orders(status: Optional[str] = None, limit: int = 100, user: Dict[str, Any] = Depends(require_admin)):
    """Liste des commandes (admin uniquement), filtrable par statut."""
    try:
        status_filter = OrderStatus(status) if status else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status}")
    orders = orders_service.get_orchestrator().list_orders(status=status_filter, limit=min(max(limit, 1), 500))
    return {"orders": [o.to_dict() for o in orders]}
