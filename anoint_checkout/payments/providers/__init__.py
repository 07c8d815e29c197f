"""
Registre des adaptateurs de paiement, un par protocole.
get_provider() instancie les adaptateurs réels à la demande; set_provider() permet
de brancher un FakeProvider (dev/tests).
"""
from typing import Dict

from anoint_checkout.payments.methods import Protocol
from .base import PaymentProvider
from .card import StripeCardProvider
from .crypto import NowPaymentsCryptoProvider
from .fake import FakeProvider
from .wallet import PayPalWalletProvider

_FACTORIES = {
    Protocol.CARD: StripeCardProvider,
    Protocol.REDIRECT_WALLET: PayPalWalletProvider,
    Protocol.CRYPTO_ASSET: NowPaymentsCryptoProvider,
}

_providers: Dict[Protocol, PaymentProvider] = {}

def get_provider(protocol: Protocol) -> PaymentProvider:
    provider = _providers.get(protocol)
    if provider is None:
        provider = _FACTORIES[protocol]()
        _providers[protocol] = provider
    return provider

def set_provider(protocol: Protocol, provider: PaymentProvider) -> None:
    _providers[protocol] = provider

def reset_providers() -> None:
    _providers.clear()

__all__ = [
    "PaymentProvider",
    "StripeCardProvider",
    "PayPalWalletProvider",
    "NowPaymentsCryptoProvider",
    "FakeProvider",
    "get_provider",
    "set_provider",
    "reset_providers",
]
