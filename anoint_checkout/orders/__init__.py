"""
Module 'orders' (feature-first): commande figée, machine d'états, stockage et orchestrateur.
"""

from .models import OrderData, OrderStatus
from .state_machine import TERMINAL_STATES, TRANSITIONS, can_transition, is_terminal, transition
from .repository import (
    InMemoryOrderRepository,
    OrderRepository,
    SupabaseOrderRepository,
    get_order_repository,
    reset_order_repository,
    set_order_repository,
)

__all__ = [
    "OrderData",
    "OrderStatus",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "can_transition",
    "is_terminal",
    "transition",
    "InMemoryOrderRepository",
    "OrderRepository",
    "SupabaseOrderRepository",
    "get_order_repository",
    "reset_order_repository",
    "set_order_repository",
]
