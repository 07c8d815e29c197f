"""
Cas d'usage 'shipping': colis, appel transporteur avec retries bornés, sélection explicite.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Awaitable, Callable, Iterable, List, Optional

from anoint_checkout.cart.models import CartLineItem, CartSummary
from anoint_checkout.config import SHIPPING_RETRY_ATTEMPTS, SHIPPING_RETRY_BACKOFF_SECONDS
from anoint_checkout.errors import ProviderUnavailableError, ShippingUnavailableError, ValidationError
from .carriers import CarrierClient, get_carrier_client
from .models import Parcel, ShippingAddress, ShippingRate

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS_CM = (Decimal("10"), Decimal("10"), Decimal("5"))
PADDING_CM = Decimal("5")
HEIGHT_PADDING_CM = Decimal("3")
MIN_HEIGHT_CM = Decimal("10")

# module anoint_checkout.shipping.service
def build_parcel(items: Iterable[CartLineItem]) -> Parcel:
    """
    Dimensions du colis à partir des lignes physiques:
    - longueur/largeur = plus grande dimension d'article + 5 cm de rembourrage
    - hauteur = max(Σ hauteurs + 3, 10) (articles empilés)
    - poids = Σ poids × quantité
    """
    physical = [i for i in items if i.is_physical]
    weight = sum(((i.weight_kg or Decimal("0")) * i.quantity for i in physical), Decimal("0"))
    max_length = Decimal("0")
    max_width = Decimal("0")
    total_height = Decimal("0")
    for item in physical:
        length = item.length_cm or DEFAULT_DIMENSIONS_CM[0]
        width = item.width_cm or DEFAULT_DIMENSIONS_CM[1]
        height = item.height_cm or DEFAULT_DIMENSIONS_CM[2]
        max_length = max(max_length, length)
        max_width = max(max_width, width)
        total_height += height * item.quantity
    return Parcel(
        weight_kg=weight,
        length_cm=max_length + PADDING_CM,
        width_cm=max_width + PADDING_CM,
        height_cm=max(total_height + HEIGHT_PADDING_CM, MIN_HEIGHT_CM),
    )

async def resolve_rates(
    summary: CartSummary,
    items: Iterable[CartLineItem],
    address: Optional[ShippingAddress],
    *,
    client: Optional[CarrierClient] = None,
    attempts: int = SHIPPING_RETRY_ATTEMPTS,
    backoff: float = SHIPPING_RETRY_BACKOFF_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> List[ShippingRate]:
    """
    Retourne les tarifs triés par prix croissant.
    - Panier sans article physique: [] sans appeler le transporteur.
    - Erreur de transport: jusqu'à `attempts` essais, backoff exponentiel.
    - Épuisement: ShippingUnavailableError (jamais de livraison gratuite par défaut).
    """
    if not summary.has_physical_items:
        return []
    if address is None:
        raise ValidationError("Shipping address is required for physical items")

    client = client or get_carrier_client()
    parcel = build_parcel(items)
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            rates = await client.fetch_rates(parcel, address)
            break
        except ProviderUnavailableError as e:
            logger.warning("shipping.rates attempt=%s/%s failed: %s", attempt, attempts, e)
            if attempt == attempts:
                raise ShippingUnavailableError() from e
            await sleep(backoff * (2 ** (attempt - 1)))
    if not rates:
        raise ShippingUnavailableError("No shipping rates available for this address")
    return sorted(rates, key=lambda r: r.price)

def select_rate(rates: List[ShippingRate], rate_id: Optional[str]) -> Optional[ShippingRate]:
    """
    Sélection explicite d'un tarif.
    - Aucun tarif (panier numérique): None.
    - Plusieurs tarifs: rate_id obligatoire (le moins cher n'est jamais choisi en silence).
    - Un seul tarif: il peut être retenu implicitement.
    """
    if not rates:
        return None
    if not rate_id:
        if len(rates) == 1:
            return rates[0]
        raise ValidationError("A shipping rate must be selected")
    for rate in rates:
        if rate.id == rate_id:
            return rate
    raise ValidationError(f"Unknown shipping rate: {rate_id}")
