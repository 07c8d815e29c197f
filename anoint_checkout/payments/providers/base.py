"""
Port commun des rails de paiement: l'orchestrateur ne connaît que cette interface.
"""
from abc import ABC, abstractmethod
from typing import Any

from anoint_checkout.orders.models import OrderData
from anoint_checkout.payments.methods import PaymentMethod, Protocol
from anoint_checkout.payments.models import PaymentResult

# module anoint_checkout.payments.providers.base
class PaymentProvider(ABC):
    protocol: Protocol

    @abstractmethod
    async def charge(self, order: OrderData, method: PaymentMethod, **params: Any) -> PaymentResult:
        """
        Soumet le paiement d'une commande figée.
        - Jamais réessayé automatiquement (risque de double débit).
        - Refus: PaymentResult.failed(message affichable).
        - Panne/timeout: ProviderError / ProviderUnavailableError.
        """

    @abstractmethod
    async def get_status(self, reference: str) -> PaymentResult:
        """Statut courant côté fournisseur (lecture idempotente)."""


def field_of(obj: Any, key: str, default: Any = None) -> Any:
    """Lecture tolérante d'un champ sur un dict ou un objet SDK."""
    if isinstance(obj, dict):
        return obj.get(key, default)
    try:
        return obj[key]
    except (KeyError, TypeError):
        return getattr(obj, key, default)
