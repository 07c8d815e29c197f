"""
Module 'cart' (feature-first): lignes de panier, agrégation et persistance du panier.
"""

from .models import CartLineItem, CartSummary, ProductKind
from .service import aggregate_cart, parse_line_items

__all__ = [
    "CartLineItem",
    "CartSummary",
    "ProductKind",
    "aggregate_cart",
    "parse_line_items",
]
