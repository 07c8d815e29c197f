"""
Anoint Array: service de checkout et de paiement (panier, livraison, taxes, paiements, webhooks).
"""
