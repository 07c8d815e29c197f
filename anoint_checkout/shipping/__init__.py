"""
Module 'shipping' (feature-first): adresses, colis, tarifs transporteur.
"""

from .models import Parcel, ShippingAddress, ShippingRate
from .carriers import CarrierClient, HttpCarrierClient, TableCarrierClient, get_carrier_client
from .service import build_parcel, resolve_rates, select_rate

__all__ = [
    "Parcel",
    "ShippingAddress",
    "ShippingRate",
    "CarrierClient",
    "HttpCarrierClient",
    "TableCarrierClient",
    "get_carrier_client",
    "build_parcel",
    "resolve_rates",
    "select_rate",
]
