"""
Stockage des commandes: Supabase (production) ou mémoire (dev/tests).
Les deux implémentent le compare-and-set atomique sur le statut.
"""
import copy
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from anoint_checkout.errors import ProviderUnavailableError
from anoint_checkout.infra.supabase_client import get_service_supabase
from .models import OrderData, OrderStatus, RECORD_FIELD_ENCODERS, utcnow

logger = logging.getLogger(__name__)

# module anoint_checkout.orders.repository
class OrderRepository(ABC):
    @abstractmethod
    def create(self, order: OrderData) -> OrderData:
        ...

    @abstractmethod
    def get(self, order_id: str) -> Optional[OrderData]:
        ...

    @abstractmethod
    def compare_and_set(
        self,
        order_id: str,
        expected: Iterable[OrderStatus],
        new_status: Optional[OrderStatus] = None,
        **changes: Any,
    ) -> Optional[OrderData]:
        """
        Met à jour la commande seulement si son statut est dans `expected`.
        new_status=None: mise à jour de champs sans changer le statut.
        Retourne la commande à jour, ou None (statut différent ou commande inconnue).
        """

    @abstractmethod
    def list(self, *, status: Optional[OrderStatus] = None, limit: int = 100) -> List[OrderData]:
        ...

    @abstractmethod
    def count_children(self, parent_order_id: str) -> int:
        ...


class InMemoryOrderRepository(OrderRepository):
    def __init__(self):
        self._orders: Dict[str, OrderData] = {}
        self._lock = threading.Lock()

    def create(self, order: OrderData) -> OrderData:
        with self._lock:
            if order.order_id in self._orders:
                raise ValueError(f"Duplicate order id {order.order_id}")
            self._orders[order.order_id] = copy.deepcopy(order)
            return copy.deepcopy(order)

    def get(self, order_id: str) -> Optional[OrderData]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    def compare_and_set(self, order_id, expected, new_status=None, **changes):
        expected = set(expected)
        with self._lock:
            current = self._orders.get(order_id)
            if current is None or current.status not in expected:
                return None
            if new_status is not None:
                changes["status"] = new_status
            updated = replace(current, updated_at=utcnow(), **changes)
            self._orders[order_id] = updated
            return copy.deepcopy(updated)

    def list(self, *, status=None, limit=100):
        with self._lock:
            orders = [o for o in self._orders.values() if status is None or o.status == status]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return [copy.deepcopy(o) for o in orders[:limit]]

    def count_children(self, parent_order_id):
        with self._lock:
            return sum(1 for o in self._orders.values() if o.parent_order_id == parent_order_id)


class SupabaseOrderRepository(OrderRepository):
    """
    Table 'orders'. Le compare-and-set s'appuie sur un UPDATE ... WHERE status IN (...):
    Postgres garantit qu'une seule requête concurrente modifie la ligne.
    """

    table = "orders"

    def _client(self):
        return get_service_supabase()

    def create(self, order: OrderData) -> OrderData:
        try:
            res = self._client().table(self.table).insert(order.to_record()).execute()
        except Exception as e:
            logger.exception("orders.repository.create failed order_id=%s", order.order_id)
            raise ProviderUnavailableError("Order store unavailable") from e
        rows = res.data or []
        return OrderData.from_record(rows[0]) if rows else order

    def get(self, order_id: str) -> Optional[OrderData]:
        try:
            res = (
                self._client()
                .table(self.table)
                .select("*")
                .eq("order_id", order_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.exception("orders.repository.get failed order_id=%s", order_id)
            raise ProviderUnavailableError("Order store unavailable") from e
        rows = res.data or []
        return OrderData.from_record(rows[0]) if rows else None

    def compare_and_set(self, order_id, expected, new_status=None, **changes):
        if new_status is not None:
            changes["status"] = new_status
        changes["updated_at"] = utcnow()
        payload = {
            key: RECORD_FIELD_ENCODERS[key](value) if key in RECORD_FIELD_ENCODERS else value
            for key, value in changes.items()
        }
        if "processing_fee" in changes:
            # total dénormalisé pour l'admin: recalculé à partir de la ligne courante
            current = self.get(order_id)
            if current is not None:
                payload["total"] = str(replace(current, processing_fee=changes["processing_fee"]).total)
        try:
            res = (
                self._client()
                .table(self.table)
                .update(payload)
                .eq("order_id", order_id)
                .in_("status", [s.value for s in expected])
                .execute()
            )
        except Exception as e:
            logger.exception("orders.repository.compare_and_set failed order_id=%s", order_id)
            raise ProviderUnavailableError("Order store unavailable") from e
        rows = res.data or []
        return OrderData.from_record(rows[0]) if rows else None

    def list(self, *, status=None, limit=100):
        try:
            query = self._client().table(self.table).select("*")
            if status is not None:
                query = query.eq("status", status.value)
            res = query.order("created_at", desc=True).limit(limit).execute()
            return [OrderData.from_record(r) for r in res.data or []]
        except Exception:
            logger.exception("orders.repository.list failed")
            return []

    def count_children(self, parent_order_id):
        try:
            res = (
                self._client()
                .table(self.table)
                .select("order_id")
                .eq("parent_order_id", parent_order_id)
                .execute()
            )
            return len(res.data or [])
        except Exception as e:
            logger.exception("orders.repository.count_children failed order_id=%s", parent_order_id)
            raise ProviderUnavailableError("Order store unavailable") from e


_repository: Optional[OrderRepository] = None

def get_order_repository() -> OrderRepository:
    global _repository
    if _repository is None:
        from anoint_checkout.config import ORDER_STORE
        _repository = SupabaseOrderRepository() if ORDER_STORE == "supabase" else InMemoryOrderRepository()
    return _repository

def set_order_repository(repository: OrderRepository) -> None:
    global _repository
    _repository = repository

def reset_order_repository() -> None:
    global _repository
    _repository = None
