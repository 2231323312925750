"""Order and kitchen ticket status machines.

Both tables are exhaustive over their enums; a status added to either enum
without a row here fails at import time.
"""

from typing import Dict, FrozenSet, Optional

from rms.core.errors import InvalidTransition, TerminalState
from rms.models.kitchen import KitchenOrderStatus
from rms.models.order import OrderStatus

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset(
        {OrderStatus.SERVED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
    ),
    OrderStatus.SERVED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_ORDER_STATUSES = frozenset(
    status for status, targets in ORDER_TRANSITIONS.items() if not targets
)

# Linear bump chain; None marks the end of the line.
KITCHEN_BUMP_CHAIN: Dict[KitchenOrderStatus, Optional[KitchenOrderStatus]] = {
    KitchenOrderStatus.NEW: KitchenOrderStatus.VIEWED,
    KitchenOrderStatus.VIEWED: KitchenOrderStatus.IN_PROGRESS,
    KitchenOrderStatus.IN_PROGRESS: KitchenOrderStatus.READY,
    KitchenOrderStatus.READY: KitchenOrderStatus.SERVED,
    KitchenOrderStatus.SERVED: None,
}

# Forward rank used to keep rollups from moving a ticket backwards.
KITCHEN_STATUS_RANK: Dict[KitchenOrderStatus, int] = {
    status: rank for rank, status in enumerate(KitchenOrderStatus)
}


def _check_exhaustive(table: dict, enum_cls) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        names = ", ".join(sorted(m.value for m in missing))
        raise RuntimeError(f"{enum_cls.__name__} transition table is missing: {names}")


_check_exhaustive(ORDER_TRANSITIONS, OrderStatus)
_check_exhaustive(KITCHEN_BUMP_CHAIN, KitchenOrderStatus)


def can_transition_order(current: OrderStatus, requested: OrderStatus) -> bool:
    """Return True if an order may move from ``current`` to ``requested``."""
    return OrderStatus(requested) in ORDER_TRANSITIONS[OrderStatus(current)]


def validate_order_transition(current: OrderStatus, requested: OrderStatus) -> None:
    """Raise InvalidTransition unless the order transition is allowed."""
    if not can_transition_order(current, requested):
        raise InvalidTransition(OrderStatus(current).value, OrderStatus(requested).value)


def next_kitchen_status(current: KitchenOrderStatus) -> KitchenOrderStatus:
    """Return the status a bump moves a ticket to.

    Raises:
        TerminalState: the ticket has no successor.
    """
    current = KitchenOrderStatus(current)
    successor = KITCHEN_BUMP_CHAIN[current]
    if successor is None:
        raise TerminalState(current.value)
    return successor


def is_forward(current: KitchenOrderStatus, target: KitchenOrderStatus) -> bool:
    """True when ``target`` is strictly later than ``current`` in the chain."""
    return KITCHEN_STATUS_RANK[KitchenOrderStatus(target)] > KITCHEN_STATUS_RANK[
        KitchenOrderStatus(current)
    ]
