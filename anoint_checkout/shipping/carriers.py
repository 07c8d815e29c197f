"""
Clients transporteur: API HTTP (httpx) ou table de tarifs interne.
Les deux exposent fetch_rates(parcel, address) -> List[ShippingRate].
"""
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional

import httpx

from anoint_checkout.config import (
    CARRIER_API_KEY,
    CARRIER_RATES_URL,
    PROVIDER_TIMEOUT_SECONDS,
    SHIPPING_ORIGIN_POSTAL_CODE,
)
from anoint_checkout.errors import ProviderError, ProviderUnavailableError
from anoint_checkout.utils.money import round_money
from .models import Parcel, ShippingAddress, ShippingRate

logger = logging.getLogger(__name__)

# module anoint_checkout.shipping.carriers
class CarrierClient(ABC):
    @abstractmethod
    async def fetch_rates(self, parcel: Parcel, address: ShippingAddress) -> List[ShippingRate]:
        ...


BASE_RATES: List[ShippingRate] = [
    ShippingRate("cp-regular", "canada-post", "Canada Post Regular Parcel", Decimal("12.99"), "5-8 business days", False, "DOM.RP"),
    ShippingRate("cp-expedited", "canada-post", "Canada Post Expedited Parcel", Decimal("18.99"), "2-3 business days", False, "DOM.EP"),
    ShippingRate("cp-xpresspost", "canada-post", "Canada Post Xpresspost", Decimal("26.99"), "1-2 business days", True, "DOM.XP"),
    ShippingRate("ups-ground", "ups", "UPS Ground", Decimal("15.49"), "3-5 business days", False, "03"),
    ShippingRate("ups-3day", "ups", "UPS 3 Day Select", Decimal("24.99"), "3 business days", True, "12"),
    ShippingRate("ups-2day", "ups", "UPS 2nd Day Air", Decimal("34.99"), "2 business days", True, "02"),
    ShippingRate("ups-overnight", "ups", "UPS Next Day Air", Decimal("49.99"), "1 business day", True, "01"),
]

HEAVY_THRESHOLD_KG = Decimal("2")
HEAVY_SURCHARGE_PER_KG = Decimal("2.50")
OUT_OF_PROVINCE_SURCHARGE = Decimal("3.00")
HOME_PROVINCE = "ON"
OVERSIZE_VOLUME_CM3 = Decimal("50000")
OVERSIZE_SURCHARGE = Decimal("8.00")


class TableCarrierClient(CarrierClient):
    """
    Tarifs déterministes (Postes Canada / UPS) avec ajustements:
    - +2.50 par kg au-delà de 2 kg
    - +3.00 hors Ontario
    - +8.00 si le volume dépasse 50 000 cm³
    """

    def __init__(self, rates: Optional[List[ShippingRate]] = None):
        self.rates = list(rates or BASE_RATES)

    async def fetch_rates(self, parcel: Parcel, address: ShippingAddress) -> List[ShippingRate]:
        surcharge = Decimal("0")
        if parcel.weight_kg > HEAVY_THRESHOLD_KG:
            surcharge += (parcel.weight_kg - HEAVY_THRESHOLD_KG) * HEAVY_SURCHARGE_PER_KG
        if address.province != HOME_PROVINCE:
            surcharge += OUT_OF_PROVINCE_SURCHARGE
        if parcel.volume_cm3 > OVERSIZE_VOLUME_CM3:
            surcharge += OVERSIZE_SURCHARGE
        return [
            ShippingRate(
                id=r.id,
                carrier=r.carrier,
                name=r.name,
                price=round_money(r.price + surcharge),
                estimated_days=r.estimated_days,
                guaranteed=r.guaranteed,
                service_code=r.service_code,
            )
            for r in self.rates
        ]


class HttpCarrierClient(CarrierClient):
    """
    Client de l'API de tarifs transporteur.
    - Erreurs de transport / 5xx -> ProviderUnavailableError (réessayable)
    - 4xx / réponse illisible -> ProviderError
    """

    def __init__(self, url: str = CARRIER_RATES_URL, api_key: str = CARRIER_API_KEY,
                 timeout: float = PROVIDER_TIMEOUT_SECONDS, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def fetch_rates(self, parcel: Parcel, address: ShippingAddress) -> List[ShippingRate]:
        payload = {
            "origin": {"postalCode": SHIPPING_ORIGIN_POSTAL_CODE, "country": "CA"},
            "destination": {
                "postalCode": address.postal_code,
                "province": address.province,
                "country": address.country,
            },
            "parcel": {
                "weightKg": str(parcel.weight_kg),
                "lengthCm": str(parcel.length_cm),
                "widthCm": str(parcel.width_cm),
                "heightCm": str(parcel.height_cm),
            },
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                res = await client.post(self.url, json=payload, headers=headers)
        except httpx.TransportError as e:
            raise ProviderUnavailableError("Carrier rate service unreachable") from e
        if res.status_code >= 500:
            raise ProviderUnavailableError(f"Carrier rate service error ({res.status_code})")
        if res.status_code >= 400:
            logger.warning("shipping.carrier rejected status=%s body=%s", res.status_code, res.text[:300])
            raise ProviderError("Carrier rejected the rate request")
        try:
            return [ShippingRate.from_payload(r) for r in res.json().get("rates") or []]
        except Exception as e:
            logger.exception("shipping.carrier invalid payload")
            raise ProviderError("Carrier returned an invalid rate payload") from e


def get_carrier_client() -> CarrierClient:
    if CARRIER_RATES_URL:
        return HttpCarrierClient()
    return TableCarrierClient()
