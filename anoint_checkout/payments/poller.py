"""
CryptoConfirmationPoller: une tâche asyncio annulable par commande CryptoPending.

S'arrête quand:
- le seuil de confirmations est atteint (Succeeded)
- l'échéance est passée (Expired)
- le consommateur annule (navigation), après une dernière vérification d'échéance
- le fournisseur échoue `max_failures` fois de suite (le webhook et le balayage d'expiration prennent le relais)
Le poller n'est jamais la seule source de vérité: le webhook reste l'autorité,
et les deux appellent les mêmes transitions gardées de l'orchestrateur.
"""
import asyncio
import logging
from typing import Dict, Optional

from anoint_checkout.config import CRYPTO_POLL_INTERVAL_SECONDS, CRYPTO_POLL_MAX_FAILURES
from anoint_checkout.errors import ProviderError
from anoint_checkout.orders.models import OrderData, OrderStatus
from anoint_checkout.payments.methods import Protocol
from anoint_checkout.payments.models import PaymentStatus

logger = logging.getLogger(__name__)

# module anoint_checkout.payments.poller
class CryptoConfirmationPoller:
    def __init__(self, orchestrator, *, interval: float = CRYPTO_POLL_INTERVAL_SECONDS,
                 max_backoff: Optional[float] = None, max_failures: int = CRYPTO_POLL_MAX_FAILURES):
        self.orchestrator = orchestrator
        self.interval = interval
        self.max_backoff = max_backoff if max_backoff is not None else interval * 8
        self.max_failures = max(1, max_failures)
        self._tasks: Dict[str, asyncio.Task] = {}

    def start(self, order_id: str) -> asyncio.Task:
        """Démarre (ou renvoie) la tâche de polling de la commande. Doit être appelé dans une boucle active."""
        existing = self._tasks.get(order_id)
        if existing is not None and not existing.done():
            return existing
        task = asyncio.get_running_loop().create_task(self._run(order_id), name=f"crypto-poller-{order_id}")
        self._tasks[order_id] = task

        def _forget(t: asyncio.Task) -> None:
            if self._tasks.get(order_id) is t:
                self._tasks.pop(order_id, None)

        task.add_done_callback(_forget)
        logger.info("payments.poller started order_id=%s", order_id)
        return task

    def is_running(self, order_id: str) -> bool:
        task = self._tasks.get(order_id)
        return task is not None and not task.done()

    def cancel(self, order_id: str) -> bool:
        task = self._tasks.get(order_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def cancel_all(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _seconds_until_expiry(self, order: OrderData) -> float:
        remaining = (order.crypto.expires_at - self.orchestrator.clock()).total_seconds()
        return max(remaining, 0.0)

    async def _run(self, order_id: str) -> Optional[OrderData]:
        orchestrator = self.orchestrator
        delay = self.interval
        failures = 0
        try:
            while True:
                order = orchestrator.repo.get(order_id)
                if order is None or order.status != OrderStatus.CRYPTO_PENDING or order.crypto is None:
                    logger.info("payments.poller stopped order_id=%s status=%s",
                                order_id, order.status.value if order else None)
                    return order
                now = orchestrator.clock()
                if order.crypto.is_expired(now):
                    return orchestrator.expire(order_id, now=now) or orchestrator.repo.get(order_id)

                provider = orchestrator.provider_for(Protocol.CRYPTO_ASSET)
                try:
                    result = await provider.get_status(order.crypto.payment_id)
                except ProviderError as e:
                    failures += 1
                    if failures >= self.max_failures:
                        logger.error("payments.poller giving up order_id=%s failures=%s error=%s",
                                     order_id, failures, e)
                        return order
                    delay = min(delay * 2, self.max_backoff)
                    logger.warning("payments.poller status failed order_id=%s retry_in=%.1fs error=%s",
                                   order_id, delay, e)
                    await asyncio.sleep(min(delay, self._seconds_until_expiry(order) + 0.001))
                    continue
                delay = self.interval
                failures = 0

                if result.status == PaymentStatus.FAILED:
                    orchestrator.mark_failed(order_id, result.message)
                    continue
                observed = result.crypto.confirmations if result.crypto else 0
                if result.status == PaymentStatus.SUCCEEDED:
                    observed = max(observed, order.crypto.required_confirmations)
                updated = orchestrator.record_confirmations(order_id, observed)
                if updated is not None and updated.status != OrderStatus.CRYPTO_PENDING:
                    continue
                await asyncio.sleep(min(self.interval, self._seconds_until_expiry(order) + 0.001))
        except asyncio.CancelledError:
            logger.info("payments.poller cancelled order_id=%s", order_id)
            # l'annulation ne laisse jamais une tentative échue en CryptoPending
            orchestrator.expire(order_id)
            raise
