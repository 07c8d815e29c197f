from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from anoint_checkout.cart.service import aggregate_cart, parse_line_items
from anoint_checkout.shipping import service as shipping_service
from anoint_checkout.shipping.models import ShippingAddress

router = APIRouter(prefix="/api/v1/shipping", tags=["Shipping API"])


class RatesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[Dict[str, Any]]
    address: Optional[Dict[str, Any]] = Field(default=None, alias="shippingAddress")

# module anoint_checkout.shipping.views
@router.post("/rates")
async def get_rates(body: RatesRequest):
    """
    Tarifs de livraison triés par prix croissant.
    - Panier sans article physique: {"rates": [], "required": false}, aucun appel transporteur
    - Erreurs: 400 adresse manquante/invalide, 503 transporteur indisponible après retries
    """
    items = parse_line_items(body.items)
    summary = aggregate_cart(items, for_checkout=False)
    address = ShippingAddress.from_payload(body.address) if body.address else None
    rates = await shipping_service.resolve_rates(summary, items, address)
    return {
        "required": summary.has_physical_items,
        "summary": summary.to_dict(),
        "rates": [r.to_dict() for r in rates],
    }
