"""
Taxonomie des erreurs du checkout.
Chaque exception porte un status_code HTTP, traduit en JSON par app_setup.exceptions.
"""

# module anoint_checkout.errors
class CheckoutError(Exception):
    status_code = 400

    def __init__(self, message: str = "", status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(CheckoutError):
    """Méthode invalide, montant hors bornes, champ manquant: toujours récupérable côté client."""
    status_code = 400


class EmptyCartError(ValidationError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class ProviderError(CheckoutError):
    """Refus ou panne fournisseur. Le message doit être affichable tel quel."""
    status_code = 500


class ProviderUnavailableError(ProviderError):
    status_code = 503


class ShippingUnavailableError(ProviderUnavailableError):
    def __init__(self, message: str = "Shipping rates are temporarily unavailable, please retry later"):
        super().__init__(message)


class InvalidSignatureError(CheckoutError):
    status_code = 400


class ExpiryError(CheckoutError):
    """Tentative crypto expirée: terminale pour la tentative, pas pour la commande."""
    status_code = 400


class OrderNotFoundError(CheckoutError):
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id
