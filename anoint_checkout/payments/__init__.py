"""
Module 'payments' (feature-first): point d'entrée public.
Réunit le catalogue des moyens de paiement, les frais et le contrat PaymentResult.
Les adaptateurs fournisseurs vivent dans payments.providers, le polling crypto dans payments.poller.
"""

from .methods import PaymentMethod, PaymentMethodRegistry, Protocol, ValidationResult, registry
from .fees import calculate_fee, fee_breakdown
from .models import CryptoPaymentDetails, PaymentResult, PaymentStatus

__all__ = [
    "PaymentMethod",
    "PaymentMethodRegistry",
    "Protocol",
    "ValidationResult",
    "registry",
    "calculate_fee",
    "fee_breakdown",
    "CryptoPaymentDetails",
    "PaymentResult",
    "PaymentStatus",
]
