import logging
from typing import List, Dict, Any

from anoint_checkout.errors import ProviderUnavailableError
from anoint_checkout.infra.supabase_client import get_service_supabase

logger = logging.getLogger(__name__)

# colonnes cart_items -> clés du JSON client
ROW_FIELDS = {
    "product_id": "productId",
    "title": "title",
    "unit_price": "unitPrice",
    "quantity": "quantity",
    "product_kind": "productKind",
    "weight_kg": "weightKg",
    "length_cm": "lengthCm",
    "width_cm": "widthCm",
    "height_cm": "heightCm",
}

# module anoint_checkout.cart.repository
def _row_to_line(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: row.get(column) for column, key in ROW_FIELDS.items() if row.get(column) is not None}

def fetch_cart_items(cart_id: str) -> List[Dict[str, Any]]:
    """
    Lignes du panier persisté (table cart_items), au format JSON client (camelCase)
    attendu par parse_line_items.
    Base injoignable: ProviderUnavailableError (503), jamais un panier vide silencieux.
    """
    try:
        res = (
            get_service_supabase()
            .table("cart_items")
            .select("*")
            .eq("cart_id", cart_id)
            .execute()
        )
    except Exception as e:
        logger.exception("cart.repository.fetch_cart_items failed cart_id=%s", cart_id)
        raise ProviderUnavailableError("Cart is temporarily unavailable, please retry") from e
    return [_row_to_line(row) for row in res.data or []]

def clear_cart(cart_id: str) -> bool:
    """
    Vide le panier. Idempotent: vider un panier déjà vide (ou inconnu) n'est pas une erreur.
    Retourne True si des lignes ont été supprimées.
    """
    if not cart_id:
        return False
    res = (
        get_service_supabase()
        .table("cart_items")
        .delete()
        .eq("cart_id", cart_id)
        .execute()
    )
    deleted = len(res.data or [])
    logger.info("cart.cleared cart_id=%s rows=%s", cart_id, deleted)
    return deleted > 0
