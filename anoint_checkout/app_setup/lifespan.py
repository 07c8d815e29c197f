"""
Lifespan FastAPI: tâche de fond d'expiration des paiements crypto, arrêt propre des pollers.
- CRYPTO_SWEEP_INTERVAL_SECONDS <= 0: balayage désactivé (tests)
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from anoint_checkout import config
from anoint_checkout.orders import service as orders_service

async def _sweep_loop(interval: float) -> None:
    logger = logging.getLogger("uvicorn.error")
    while True:
        await asyncio.sleep(interval)
        try:
            expired = orders_service.get_orchestrator().sweep_expired()
            if expired:
                logger.info("crypto sweep expired=%s", expired)
        except Exception:
            logger.exception("crypto sweep failed")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    - Démarre le balayage périodique des commandes CryptoPending échues: un poller annulé
      côté client ne laisse jamais une commande en attente indéfiniment.
    - À l'arrêt: annule le balayage et les pollers en cours.
    """
    logger = logging.getLogger("uvicorn.error")
    sweeper = None
    if config.CRYPTO_SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(_sweep_loop(config.CRYPTO_SWEEP_INTERVAL_SECONDS))
        logger.info("Crypto expiry sweep enabled interval=%ss", config.CRYPTO_SWEEP_INTERVAL_SECONDS)
    else:
        logger.info("Crypto expiry sweep disabled")
    app.state.crypto_sweep_enabled = sweeper is not None
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
        poller = orders_service.get_orchestrator().poller
        if poller is not None:
            await poller.cancel_all()
