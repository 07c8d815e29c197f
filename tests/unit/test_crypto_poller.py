import asyncio
from datetime import datetime, timedelta, timezone
import pytest

from anoint_checkout.errors import ProviderError
from anoint_checkout.orders.models import OrderStatus
from anoint_checkout.payments.methods import Protocol
from anoint_checkout.payments.poller import CryptoConfirmationPoller

S = OrderStatus


async def _pending_crypto_order(orchestrator, make_order):
    order = make_order(S.REVIEW)
    orchestrator.select_method(order.order_id, "nowpayments-btc")
    pending, result = await orchestrator.confirm(order.order_id, terms_accepted=True)
    assert pending.status == S.CRYPTO_PENDING
    return pending.order_id, result.transaction_id


def test_poller_stops_on_confirmation(orchestrator, providers, make_order):
    fake = providers[Protocol.CRYPTO_ASSET]

    async def scenario():
        order_id, payment_id = await _pending_crypto_order(orchestrator, make_order)
        fake.set_confirmations(payment_id, 1)
        poller = CryptoConfirmationPoller(orchestrator, interval=0.01)
        task = poller.start(order_id)
        assert poller.start(order_id) is task
        final = await asyncio.wait_for(task, timeout=2)
        return final, poller.is_running(order_id)

    final, running = asyncio.run(scenario())

    assert final.status == S.SUCCEEDED
    assert running is False


def test_poller_expires_order_when_window_closes(orchestrator, providers, make_order):
    # Arrange: échéance dans 100 ms, aucune confirmation
    fake = providers[Protocol.CRYPTO_ASSET]
    fake.configure(expires_at=datetime.now(timezone.utc) + timedelta(milliseconds=100))

    async def scenario():
        order_id, _ = await _pending_crypto_order(orchestrator, make_order)
        poller = CryptoConfirmationPoller(orchestrator, interval=0.01)
        return await asyncio.wait_for(poller.start(order_id), timeout=2)

    # Act
    final = asyncio.run(scenario())

    # Assert
    assert final.status == S.EXPIRED
    assert final.failure_reason == "Crypto payment window expired"


def test_poller_backs_off_on_status_errors(orchestrator, providers, make_order):
    fake = providers[Protocol.CRYPTO_ASSET]
    fake.configure(
        expires_at=datetime.now(timezone.utc) + timedelta(milliseconds=150),
        status_error=ProviderError("status endpoint down"),
    )

    async def scenario():
        order_id, _ = await _pending_crypto_order(orchestrator, make_order)
        poller = CryptoConfirmationPoller(orchestrator, interval=0.01, max_backoff=0.04)
        return await asyncio.wait_for(poller.start(order_id), timeout=2)

    final = asyncio.run(scenario())

    status_calls = [c for c in fake.calls if c["op"] == "get_status"]
    assert final.status == S.EXPIRED
    assert len(status_calls) >= 2


def test_poller_provider_failure_expires_attempt(orchestrator, providers, make_order):
    fake = providers[Protocol.CRYPTO_ASSET]
    fake.configure(status_failure="Payment failed")

    async def scenario():
        order_id, _ = await _pending_crypto_order(orchestrator, make_order)
        poller = CryptoConfirmationPoller(orchestrator, interval=0.01)
        return await asyncio.wait_for(poller.start(order_id), timeout=2)

    final = asyncio.run(scenario())

    assert final.status == S.EXPIRED
    assert final.failure_reason == "Payment failed"


def test_cancelled_poller_leaves_live_attempt_pending(orchestrator, providers, make_order):
    async def scenario():
        order_id, _ = await _pending_crypto_order(orchestrator, make_order)
        poller = CryptoConfirmationPoller(orchestrator, interval=0.01)
        task = poller.start(order_id)
        await asyncio.sleep(0.03)
        assert poller.cancel(order_id) is True
        with pytest.raises(asyncio.CancelledError):
            await task
        return order_id, poller.is_running(order_id), poller.cancel(order_id)

    order_id, running, cancelled_again = asyncio.run(scenario())

    assert running is False
    assert cancelled_again is False
    assert orchestrator.get_order(order_id).status == S.CRYPTO_PENDING


def test_cancel_all_stops_every_task(orchestrator, make_order):
    async def scenario():
        first, _ = await _pending_crypto_order(orchestrator, make_order)
        second, _ = await _pending_crypto_order(orchestrator, make_order)
        poller = CryptoConfirmationPoller(orchestrator, interval=0.01)
        poller.start(first)
        poller.start(second)
        await asyncio.sleep(0.02)
        await poller.cancel_all()
        return poller.is_running(first) or poller.is_running(second)

    assert asyncio.run(scenario()) is False


def test_poller_gives_up_after_consecutive_status_failures(orchestrator, providers, make_order):
    # Arrange: fenêtre encore ouverte, endpoint de statut indisponible
    fake = providers[Protocol.CRYPTO_ASSET]
    fake.configure(status_error=ProviderError("status endpoint down"))

    async def scenario():
        order_id, _ = await _pending_crypto_order(orchestrator, make_order)
        poller = CryptoConfirmationPoller(orchestrator, interval=0.01, max_backoff=0.02, max_failures=3)
        final = await asyncio.wait_for(poller.start(order_id), timeout=2)
        return final, poller.is_running(order_id)

    # Act
    final, running = asyncio.run(scenario())

    # Assert: le webhook et le balayage d'expiration prennent le relais
    status_calls = [c for c in fake.calls if c["op"] == "get_status"]
    assert len(status_calls) == 3
    assert running is False
    assert final.status == S.CRYPTO_PENDING
    assert orchestrator.get_order(final.order_id).status == S.CRYPTO_PENDING
