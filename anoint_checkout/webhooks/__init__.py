"""
Module 'webhooks' (feature-first): réconciliation des callbacks fournisseurs.
"""

from .service import ReconciliationOutcome, WebhookReconciler, get_reconciler
from .signatures import nowpayments_signature, verify_nowpayments_ipn, verify_stripe_event

__all__ = [
    "ReconciliationOutcome",
    "WebhookReconciler",
    "get_reconciler",
    "nowpayments_signature",
    "verify_nowpayments_ipn",
    "verify_stripe_event",
]
