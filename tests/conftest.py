import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator, Dict, Any, List
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from anoint_checkout import config
from anoint_checkout.app_setup.factory import create_app
from anoint_checkout.cart.models import CartLineItem, ProductKind
from anoint_checkout.orders import service as orders_service
from anoint_checkout.orders.models import OrderData, OrderStatus
from anoint_checkout.orders.repository import (
    InMemoryOrderRepository,
    reset_order_repository,
    set_order_repository,
)
from anoint_checkout.orders.service import PaymentOrchestrator
from anoint_checkout.payments.methods import Protocol
from anoint_checkout.payments.models import CryptoPaymentDetails
from anoint_checkout.payments.providers import FakeProvider, reset_providers, set_provider
from anoint_checkout.shipping.carriers import TableCarrierClient
from anoint_checkout.taxes.service import calculate_tax
from anoint_checkout.utils.security import require_admin

STRIPE_WEBHOOK_SECRET = "whsec_test"
IPN_SECRET = "ipn-test-secret"

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/") or nodeid.startswith("unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/") or nodeid.startswith("integration/"):
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return create_app()

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture
def authenticated_admin_client(app, client):
    def _override_require_admin():
        return {"id": "admin-user-id", "role": "admin", "email": "admin@example.com"}
    app.dependency_overrides[require_admin] = _override_require_admin
    yield client
    app.dependency_overrides.pop(require_admin, None)

# Fournisseurs factices, un par rail
@pytest.fixture
def providers() -> Dict[Protocol, FakeProvider]:
    return {protocol: FakeProvider(protocol) for protocol in Protocol}

@pytest.fixture
def cleared_carts() -> List[str]:
    return []

@pytest.fixture
def orchestrator(providers, cleared_carts) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        repo=InMemoryOrderRepository(),
        providers=providers.__getitem__,
        carrier_client=TableCarrierClient(),
        clear_cart=cleared_carts.append,
    )

# Câblage: dépôt mémoire, fournisseurs factices, pas de balayage de fond
@pytest.fixture(autouse=True)
def _wire_checkout(monkeypatch, orchestrator, providers):
    monkeypatch.setattr(config, "CRYPTO_SWEEP_INTERVAL_SECONDS", 0)
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", STRIPE_WEBHOOK_SECRET)
    monkeypatch.setattr(config, "NOWPAYMENTS_IPN_SECRET", IPN_SECRET)
    set_order_repository(orchestrator.repo)
    for protocol, fake in providers.items():
        set_provider(protocol, fake)
    orders_service.set_orchestrator(orchestrator)
    try:
        yield
    finally:
        orders_service.set_orchestrator(None)
        reset_order_repository()
        reset_providers()

# Aucun accès réseau à Supabase pendant les tests
@pytest.fixture(scope="function", autouse=True)
def mock_db_dependency(monkeypatch):
    monkeypatch.setattr("anoint_checkout.infra.supabase_client.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("anoint_checkout.infra.supabase_client.get_service_supabase", lambda: MagicMock())
    monkeypatch.setattr("anoint_checkout.utils.security.get_supabase", lambda: MagicMock())
    monkeypatch.setattr("anoint_checkout.cart.repository.get_service_supabase", lambda: MagicMock())
    monkeypatch.setattr("anoint_checkout.orders.repository.get_service_supabase", lambda: MagicMock())
    monkeypatch.setattr("anoint_checkout.health.service.get_service_supabase", lambda: MagicMock())

# --- Données de test ------------------------------------------------------
@pytest.fixture
def ontario_address() -> Dict[str, Any]:
    return {
        "name": "Jane Doe",
        "addressLines": ["100 King St W"],
        "city": "Toronto",
        "province": "ON",
        "postalCode": "M5X 1A9",
        "country": "CA",
    }

@pytest.fixture
def physical_item_payload() -> Dict[str, Any]:
    return {
        "productId": "oil-30ml",
        "title": "Anointing Oil 30ml",
        "unitPrice": "24.11",
        "quantity": 2,
        "productKind": "physical",
        "weightKg": "0.5",
    }

@pytest.fixture
def digital_item_payload() -> Dict[str, Any]:
    return {
        "productId": "ebook-1",
        "title": "Devotional eBook",
        "unitPrice": "50.00",
        "quantity": 1,
        "productKind": "digital",
    }

@pytest.fixture
def make_order(orchestrator):
    """Insère directement une commande numérique dans le dépôt, au statut voulu."""
    counter = {"n": 0}

    def _make(status: OrderStatus = OrderStatus.REVIEW, subtotal: str = "50.00", **changes) -> OrderData:
        counter["n"] += 1
        amount = Decimal(subtotal)
        order = OrderData(
            order_id=changes.pop("order_id", f"AA-TEST-{counter['n']:06d}"),
            items=(CartLineItem("ebook-1", "Devotional eBook", amount, 1, ProductKind.DIGITAL),),
            subtotal=amount,
            shipping_price=Decimal("0.00"),
            tax=calculate_tax(amount, Decimal("0.00"), None),
            currency="CAD",
            customer={"email": "buyer@example.com"},
            has_physical_items=False,
            status=status,
            **changes,
        )
        return orchestrator.repo.create(order)

    return _make

@pytest.fixture
def crypto_details():
    def _details(payment_id: str = "np-1", expires_in: timedelta = timedelta(minutes=30)) -> CryptoPaymentDetails:
        return CryptoPaymentDetails(
            payment_id=payment_id,
            currency="BTC",
            address=f"addr-{payment_id}",
            amount=Decimal("0.00042"),
            expires_at=datetime.now(timezone.utc) + expires_in,
        )
    return _details
