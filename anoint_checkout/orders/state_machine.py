"""
Machine d'états de la commande.

Review -> MethodSelected -> Processing -> {Succeeded, Failed, CryptoPending}
CryptoPending -> {Succeeded, Expired}

- Succeeded, Failed et Expired sont terminaux: aucune transition sortante.
- MethodSelected -> MethodSelected: changement de moyen de paiement.
- Processing -> MethodSelected: refus synchrone, le client peut réessayer avec un autre moyen.
- Toute transition passe par un compare-and-set du repository: le perdant d'une course
  reçoit None (no-op), jamais une exception.
"""
import logging
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .models import OrderData, OrderStatus

logger = logging.getLogger(__name__)

S = OrderStatus

TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.REVIEW: frozenset({S.METHOD_SELECTED}),
    S.METHOD_SELECTED: frozenset({S.METHOD_SELECTED, S.PROCESSING}),
    S.PROCESSING: frozenset({S.SUCCEEDED, S.FAILED, S.CRYPTO_PENDING, S.METHOD_SELECTED}),
    S.CRYPTO_PENDING: frozenset({S.SUCCEEDED, S.EXPIRED}),
    S.SUCCEEDED: frozenset(),
    S.FAILED: frozenset(),
    S.EXPIRED: frozenset(),
}

TERMINAL_STATES: FrozenSet[OrderStatus] = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# module anoint_checkout.orders.state_machine
def is_terminal(status: OrderStatus) -> bool:
    return status in TERMINAL_STATES

def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())

def transition(
    repo,
    order_id: str,
    sources: Iterable[OrderStatus],
    target: OrderStatus,
    **changes: Any,
) -> Optional[OrderData]:
    """
    Applique source -> target si le statut courant est dans `sources`.
    - Soulève ValueError si une arête demandée n'existe pas dans la table (erreur de programmation).
    - Retourne la commande mise à jour, ou None si le statut avait changé entre-temps.
    """
    sources = frozenset(sources)
    invalid = [s for s in sources if not can_transition(s, target)]
    if invalid:
        raise ValueError(f"Illegal transition {[s.value for s in invalid]} -> {target.value}")
    updated = repo.compare_and_set(order_id, sources, target, **changes)
    if updated is None:
        logger.debug("orders.transition dropped order_id=%s target=%s", order_id, target.value)
        return None
    logger.info("orders.transition order_id=%s -> %s", order_id, target.value)
    return updated
