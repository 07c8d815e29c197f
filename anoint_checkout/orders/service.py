"""
Cas d'usage 'orders': PaymentOrchestrator.

Orchestre panier, livraison, taxes, moyens de paiement et adaptateurs fournisseurs,
et fait avancer la machine d'états. Le statut persisté est la seule source de vérité:
navigateur, poller crypto et webhooks passent tous par les mêmes transitions gardées.
"""
import logging
import secrets
import string
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from anoint_checkout.cart import repository as cart_repository
from anoint_checkout.cart.models import CartLineItem
from anoint_checkout.cart.service import aggregate_cart
from anoint_checkout.config import CHECKOUT_CURRENCY
from anoint_checkout.errors import (
    ExpiryError,
    OrderNotFoundError,
    ProviderError,
    ProviderUnavailableError,
    ValidationError,
)
from anoint_checkout.payments.fees import calculate_fee
from anoint_checkout.payments.methods import PaymentMethodRegistry, Protocol, registry as default_registry
from anoint_checkout.payments.models import PaymentResult, PaymentStatus
from anoint_checkout.payments.providers import PaymentProvider, get_provider
from anoint_checkout.shipping.carriers import CarrierClient
from anoint_checkout.shipping.models import ShippingAddress
from anoint_checkout.shipping.service import resolve_rates, select_rate
from anoint_checkout.taxes.service import calculate_tax, jurisdiction_for
from anoint_checkout.utils.money import ZERO, to_money
from .models import OrderData, OrderStatus
from .repository import OrderRepository, get_order_repository
from .state_machine import transition

logger = logging.getLogger(__name__)

S = OrderStatus
_ID_ALPHABET = string.ascii_uppercase + string.digits

# module anoint_checkout.orders.service
def _base36(value: int) -> str:
    digits = string.digits + string.ascii_lowercase
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"

def generate_order_id(now: Optional[datetime] = None) -> str:
    """Identifiant unique et immuable: AA-{timestamp ms en base 36}-{6 caractères aléatoires}."""
    now = now or datetime.now(timezone.utc)
    stamp = _base36(int(now.timestamp() * 1000)).upper()
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"AA-{stamp}-{suffix}"


class PaymentOrchestrator:
    def __init__(
        self,
        repo: Optional[OrderRepository] = None,
        registry: Optional[PaymentMethodRegistry] = None,
        providers: Optional[Callable[[Protocol], PaymentProvider]] = None,
        carrier_client: Optional[CarrierClient] = None,
        clear_cart: Optional[Callable[[str], Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._repo = repo
        self.registry = registry or default_registry
        self._providers = providers
        self.carrier_client = carrier_client
        self._clear_cart = clear_cart
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.poller = None

    @property
    def repo(self) -> OrderRepository:
        return self._repo or get_order_repository()

    def provider_for(self, protocol: Protocol) -> PaymentProvider:
        return self._providers(protocol) if self._providers else get_provider(protocol)

    def get_order(self, order_id: str) -> OrderData:
        order = self.repo.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # --- Review ---------------------------------------------------------
    async def create_order(
        self,
        items: Iterable[CartLineItem],
        *,
        customer: Dict[str, Any],
        shipping_address: Optional[ShippingAddress] = None,
        billing_address: Optional[ShippingAddress] = None,
        shipping_rate_id: Optional[str] = None,
        cart_id: Optional[str] = None,
        currency: str = CHECKOUT_CURRENCY,
    ) -> OrderData:
        """
        Crée la commande (statut Review) au moment où le client arrive au choix du paiement.
        - Les lignes sont copiées (tuple de dataclasses figées), jamais référencées.
        - Articles physiques: adresse et tarif de livraison explicitement choisi obligatoires.
        - Commande numérique: pas d'appel transporteur, livraison à 0, pas de taxe.
        """
        items = tuple(items or ())
        summary = aggregate_cart(items, for_checkout=True)
        if not (customer or {}).get("email"):
            raise ValidationError("Customer email is required")

        rate = None
        if summary.has_physical_items:
            if shipping_address is None:
                raise ValidationError("Shipping address is required for physical items")
            rates = await resolve_rates(summary, items, shipping_address, client=self.carrier_client)
            rate = select_rate(rates, shipping_rate_id)
        shipping_price = rate.price if rate else ZERO
        tax = calculate_tax(
            summary.subtotal, shipping_price, jurisdiction_for(shipping_address, summary.has_physical_items)
        )
        now = self.clock()
        order = OrderData(
            order_id=generate_order_id(now),
            items=items,
            subtotal=summary.subtotal,
            shipping_price=shipping_price,
            tax=tax,
            currency=currency.upper(),
            customer=dict(customer),
            has_physical_items=summary.has_physical_items,
            shipping_address=shipping_address if summary.has_physical_items else None,
            billing_address=billing_address or shipping_address,
            shipping_rate=rate,
            cart_id=cart_id,
            created_at=now,
            updated_at=now,
        )
        created = self.repo.create(order)
        logger.info("orders.created order_id=%s total=%s physical=%s",
                    created.order_id, created.total, created.has_physical_items)
        return created

    async def reprice(self, order_id: str, shipping_rate_id: str) -> OrderData:
        """Change le tarif de livraison tant que la commande n'est pas figée."""
        order = self.get_order(order_id)
        if order.is_frozen or order.status not in (S.REVIEW, S.METHOD_SELECTED):
            raise ValidationError("Order can no longer be modified")
        if not order.has_physical_items:
            raise ValidationError("Order has no shipping")
        summary = aggregate_cart(order.items)
        rates = await resolve_rates(summary, order.items, order.shipping_address, client=self.carrier_client)
        rate = select_rate(rates, shipping_rate_id)
        tax = calculate_tax(order.subtotal, rate.price, jurisdiction_for(order.shipping_address, True))
        fee = ZERO
        if order.method_id:
            method = self.registry.get(order.method_id)
            fee = calculate_fee(order.subtotal + rate.price + tax.total, method)
        updated = self.repo.compare_and_set(
            order_id, {S.REVIEW, S.METHOD_SELECTED}, None,
            shipping_rate=rate, shipping_price=rate.price, tax=tax, processing_fee=fee,
        )
        if updated is None:
            raise ValidationError("Order can no longer be modified")
        return updated

    # --- Review -> MethodSelected ----------------------------------------
    def select_method(self, order_id: str, method_id: str) -> OrderData:
        """
        Sélection du moyen de paiement, validée sur le total hors frais.
        - Invalide: le statut reste inchangé et la raison est remontée (ValidationError).
        - Valide: frais calculés et affichés, statut MethodSelected.
        """
        order = self.get_order(order_id)
        if order.status not in (S.REVIEW, S.METHOD_SELECTED):
            raise ValidationError(f"Payment method cannot be changed while order is {order.status.value}")
        check = self.registry.validate(method_id, order.pre_fee_total, order.has_physical_items)
        if not check.valid:
            logger.info("orders.method_rejected order_id=%s method=%s reason=%s", order_id, method_id, check.reason)
            raise ValidationError(check.reason)
        method = self.registry.get(method_id)
        updated = transition(
            self.repo, order_id, {S.REVIEW, S.METHOD_SELECTED}, S.METHOD_SELECTED,
            method_id=method.id, processing_fee=calculate_fee(order.pre_fee_total, method),
        )
        if updated is None:
            raise ValidationError("Order status changed, please retry")
        return updated

    # --- MethodSelected -> Processing -> ... -----------------------------
    async def confirm(
        self,
        order_id: str,
        *,
        terms_accepted: bool,
        expected_protocol: Optional[Protocol] = None,
        amount: Any = None,
        **params: Any,
    ) -> Tuple[OrderData, PaymentResult]:
        """
        Confirme et soumet le paiement.
        - Exige l'acceptation explicite des conditions.
        - Fige l'instantané (lignes, adresses, totaux) au passage en Processing.
        - Chaque passage en Processing ouvre une nouvelle tentative (clé d'idempotence distincte).
        - Soumission jamais réessayée automatiquement.
        - Fournisseur injoignable: issue inconnue, la commande reste Processing. Une nouvelle
          confirmation resoumet la même tentative (même clé), le webhook peut aussi trancher.
        Retour: (commande à jour, PaymentResult normalisé).
        """
        order = self.get_order(order_id)
        if order.status == S.EXPIRED:
            raise ExpiryError("This payment attempt has expired, please start a new one")
        resuming = self._outcome_unknown(order)
        if order.status != S.METHOD_SELECTED and not resuming:
            raise ValidationError(f"Order cannot be confirmed while {order.status.value}")
        if not terms_accepted:
            raise ValidationError("Terms of service must be accepted")
        method = self.registry.get(order.method_id)
        if method is None:
            raise ValidationError("unsupported method")
        if expected_protocol is not None and method.protocol != expected_protocol:
            raise ValidationError("Selected payment method does not match this payment rail")
        if amount is not None and to_money(amount) != order.total:
            raise ValidationError("Invalid payment amount")

        now = self.clock()
        if resuming:
            processing = self.repo.compare_and_set(
                order_id, {S.PROCESSING}, None, terms_accepted_at=now, failure_reason=None,
            )
            logger.info("orders.resubmit order_id=%s attempt=%s", order_id, order.payment_attempts)
        else:
            processing = transition(
                self.repo, order_id, {S.METHOD_SELECTED}, S.PROCESSING,
                terms_accepted_at=now, frozen_at=now, failure_reason=None,
                payment_attempts=order.payment_attempts + 1,
            )
        if processing is None:
            raise ValidationError("Order is already being processed")

        provider = self.provider_for(method.protocol)
        try:
            result = await provider.charge(processing, method, **params)
        except ProviderUnavailableError as e:
            logger.warning("orders.charge_unknown order_id=%s method=%s error=%s", order_id, method.id, e.message)
            self.repo.compare_and_set(order_id, {S.PROCESSING}, None, failure_reason=e.message)
            raise
        except ProviderError as e:
            logger.warning("orders.charge_error order_id=%s method=%s error=%s", order_id, method.id, e.message)
            self._back_to_method_selection(order_id, e.message)
            raise
        except Exception as e:
            logger.exception("orders.charge_crashed order_id=%s method=%s", order_id, method.id)
            self._back_to_method_selection(order_id, "Payment provider error")
            raise ProviderError("Payment provider error") from e
        return self._apply_charge_result(order_id, result), result

    @staticmethod
    def _outcome_unknown(order: OrderData) -> bool:
        # Processing sans référence fournisseur mais avec une erreur: soumission interrompue
        return (
            order.status == S.PROCESSING
            and order.failure_reason is not None
            and order.provider_transaction_id is None
        )

    def _apply_charge_result(self, order_id: str, result: PaymentResult) -> OrderData:
        if result.status == PaymentStatus.SUCCEEDED:
            updated = self.mark_succeeded(order_id, transaction_id=result.transaction_id, source="checkout")
            return updated or self.get_order(order_id)
        if result.status == PaymentStatus.FAILED:
            return self._back_to_method_selection(order_id, result.message) or self.get_order(order_id)
        if result.crypto is not None:
            updated = transition(
                self.repo, order_id, {S.PROCESSING}, S.CRYPTO_PENDING,
                crypto=result.crypto, provider_transaction_id=result.transaction_id,
            )
            if updated is not None and self.poller is not None:
                self.poller.start(order_id)
            return updated or self.get_order(order_id)
        # redirection (wallet, checkout carte): reste Processing jusqu'au retour ou au webhook
        updated = self.repo.compare_and_set(
            order_id, {S.PROCESSING}, None, provider_transaction_id=result.transaction_id
        )
        return updated or self.get_order(order_id)

    def _back_to_method_selection(self, order_id: str, reason: str) -> Optional[OrderData]:
        return transition(
            self.repo, order_id, {S.PROCESSING}, S.METHOD_SELECTED,
            failure_reason=reason, frozen_at=None, provider_transaction_id=None,
        )

    async def capture_wallet(self, order_id: str, provider_order_id: str) -> OrderData:
        """Retour navigateur après approbation PayPal: capture puis Succeeded, ou retour au choix du moyen."""
        order = self.get_order(order_id)
        if order.status == S.SUCCEEDED:
            return order
        if order.status == S.EXPIRED:
            raise ExpiryError("This payment attempt has expired, please start a new one")
        if order.status != S.PROCESSING:
            raise ValidationError(f"Order cannot be captured while {order.status.value}")
        method = self.registry.get(order.method_id)
        if method is None or method.protocol != Protocol.REDIRECT_WALLET:
            raise ValidationError("Order was not paid with a wallet")
        if order.provider_transaction_id and provider_order_id != order.provider_transaction_id:
            raise ValidationError("Wallet order does not match this checkout")
        result = await self.provider_for(Protocol.REDIRECT_WALLET).capture(provider_order_id)
        if result.status == PaymentStatus.SUCCEEDED:
            return self.mark_succeeded(order_id, transaction_id=result.transaction_id, source="wallet-return") \
                or self.get_order(order_id)
        return self._back_to_method_selection(order_id, result.message) or self.get_order(order_id)

    # --- Transitions gardées partagées (navigateur, poller, webhooks) ----
    def mark_succeeded(self, order_id: str, *, transaction_id: Optional[str] = None,
                       source: str = "unknown") -> Optional[OrderData]:
        """
        Processing/CryptoPending -> Succeeded, compare-and-set.
        - Un seul appelant gagne; les autres reçoivent None (rejeu, course poller/webhook).
        - Crypto dont l'échéance est passée: Expired, jamais Succeeded.
        - Le gagnant, et lui seul, vide le panier.
        """
        order = self.repo.get(order_id)
        if order is None:
            return None
        now = self.clock()
        changes: Dict[str, Any] = {"failure_reason": None, "cart_cleared_at": now}
        sources = {S.PROCESSING, S.CRYPTO_PENDING}
        if order.status == S.CRYPTO_PENDING and order.crypto is not None:
            if order.crypto.is_expired(now):
                logger.info("orders.late_confirmation order_id=%s source=%s", order_id, source)
                self.expire(order_id, now=now)
                return None
            changes["crypto"] = order.crypto.with_confirmations(order.crypto.required_confirmations)
            sources = {S.CRYPTO_PENDING}
        if transaction_id or order.provider_transaction_id:
            changes["provider_transaction_id"] = transaction_id or order.provider_transaction_id
        updated = transition(self.repo, order_id, sources, S.SUCCEEDED, **changes)
        if updated is None:
            return None
        logger.info("orders.succeeded order_id=%s source=%s", order_id, source)
        self._clear_cart_once(updated)
        return updated

    def _clear_cart_once(self, order: OrderData) -> None:
        if not order.cart_id:
            return
        clear = self._clear_cart or cart_repository.clear_cart
        try:
            clear(order.cart_id)
        except Exception:
            logger.exception("orders.cart_clear failed order_id=%s cart_id=%s", order.order_id, order.cart_id)

    def mark_failed(self, order_id: str, reason: str) -> Optional[OrderData]:
        """
        Échec asynchrone (webhook, statut fournisseur).
        - Processing -> Failed.
        - CryptoPending -> Expired: l'échec clôt la tentative crypto, pas la commande (retry possible).
        """
        order = self.repo.get(order_id)
        if order is None:
            return None
        if order.status == S.CRYPTO_PENDING:
            return self.expire(order_id, reason=reason, force=True)
        return transition(self.repo, order_id, {S.PROCESSING}, S.FAILED, failure_reason=reason)

    def record_confirmations(self, order_id: str, observed: int) -> Optional[OrderData]:
        """
        Met à jour le nombre de confirmations observées (borné au seuil tant que en attente).
        Seuil atteint avant l'échéance: Succeeded. Échéance passée: Expired.
        """
        order = self.repo.get(order_id)
        if order is None or order.status != S.CRYPTO_PENDING or order.crypto is None:
            return order
        now = self.clock()
        if order.crypto.is_expired(now):
            return self.expire(order_id, now=now)
        if observed >= order.crypto.required_confirmations:
            return self.mark_succeeded(order_id, source="confirmations")
        if observed == order.crypto.confirmations:
            return order
        return self.repo.compare_and_set(
            order_id, {S.CRYPTO_PENDING}, None, crypto=order.crypto.with_confirmations(observed)
        )

    def expire(self, order_id: str, *, now: Optional[datetime] = None, reason: Optional[str] = None,
               force: bool = False) -> Optional[OrderData]:
        """CryptoPending -> Expired une fois expiresAt dépassé (ou immédiatement si force)."""
        order = self.repo.get(order_id)
        if order is None or order.status != S.CRYPTO_PENDING:
            return None
        now = now or self.clock()
        if not force and order.crypto is not None and not order.crypto.is_expired(now):
            return None
        updated = transition(
            self.repo, order_id, {S.CRYPTO_PENDING}, S.EXPIRED,
            failure_reason=reason or "Crypto payment window expired",
        )
        if updated is not None:
            logger.info("orders.expired order_id=%s", order_id)
        return updated

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Expire toutes les commandes CryptoPending échues (tâche de fond du lifespan)."""
        now = now or self.clock()
        expired = 0
        for order in self.repo.list(status=S.CRYPTO_PENDING, limit=500):
            if order.crypto is not None and order.crypto.is_expired(now):
                if self.expire(order.order_id, now=now) is not None:
                    expired += 1
        return expired

    def refresh_crypto_status(self, order_id: str) -> OrderData:
        """Lecture du statut crypto côté client: applique l'expiration si l'échéance est passée."""
        order = self.get_order(order_id)
        if order.status == S.CRYPTO_PENDING:
            return self.expire(order_id) or self.get_order(order_id)
        return order

    # --- Nouvelle tentative ---------------------------------------------
    def retry(self, order_id: str) -> OrderData:
        """
        Crée une sous-commande {racine}-R{n} en Review à partir d'une commande Failed/Expired.
        La commande d'origine reste terminale; la nouvelle tentative aura une nouvelle adresse crypto.
        """
        order = self.get_order(order_id)
        if order.status not in (S.FAILED, S.EXPIRED):
            raise ValidationError("Only failed or expired orders can be retried")
        root = order.parent_order_id or order.order_id
        attempt = self.repo.count_children(root) + 1
        now = self.clock()
        child = replace(
            order,
            order_id=f"{root}-R{attempt}",
            status=S.REVIEW,
            method_id=None,
            processing_fee=ZERO,
            failure_reason=None,
            provider_transaction_id=None,
            crypto=None,
            parent_order_id=root,
            payment_attempts=0,
            terms_accepted_at=None,
            frozen_at=None,
            cart_cleared_at=None,
            created_at=now,
            updated_at=now,
        )
        created = self.repo.create(child)
        logger.info("orders.retry order_id=%s from=%s", created.order_id, order_id)
        return created

    def list_orders(self, *, status: Optional[OrderStatus] = None, limit: int = 100) -> List[OrderData]:
        return self.repo.list(status=status, limit=limit)


_orchestrator: Optional[PaymentOrchestrator] = None

def get_orchestrator() -> PaymentOrchestrator:
    """Orchestrateur partagé, avec son poller crypto attaché."""
    global _orchestrator
    if _orchestrator is None:
        from anoint_checkout.payments.poller import CryptoConfirmationPoller
        _orchestrator = PaymentOrchestrator()
        _orchestrator.poller = CryptoConfirmationPoller(_orchestrator)
    return _orchestrator

def set_orchestrator(orchestrator: Optional[PaymentOrchestrator]) -> None:
    global _orchestrator
    _orchestrator = orchestrator
