"""Tests for the order and kitchen ticket status machines."""

import pytest

from rms.core.errors import InvalidTransition, TerminalState
from rms.models import KitchenOrderStatus, OrderStatus
from rms.services.status_transitions import (
    KITCHEN_BUMP_CHAIN,
    ORDER_TRANSITIONS,
    TERMINAL_ORDER_STATUSES,
    can_transition_order,
    is_forward,
    next_kitchen_status,
    validate_order_transition,
)


class TestOrderTransitions:
    """Tests for the order transition table."""

    def test_table_covers_every_status(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)

    def test_terminal_statuses(self):
        assert TERMINAL_ORDER_STATUSES == {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

    @pytest.mark.parametrize(
        "current,requested",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PREPARING),
            (OrderStatus.PREPARING, OrderStatus.READY),
            (OrderStatus.READY, OrderStatus.SERVED),
            (OrderStatus.READY, OrderStatus.COMPLETED),
            (OrderStatus.SERVED, OrderStatus.COMPLETED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.SERVED, OrderStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, requested):
        assert can_transition_order(current, requested)
        validate_order_transition(current, requested)

    @pytest.mark.parametrize(
        "current,requested",
        [
            (OrderStatus.PENDING, OrderStatus.READY),
            (OrderStatus.CONFIRMED, OrderStatus.PENDING),
            (OrderStatus.PREPARING, OrderStatus.SERVED),
            (OrderStatus.SERVED, OrderStatus.READY),
        ],
    )
    def test_rejected(self, current, requested):
        assert not can_transition_order(current, requested)
        with pytest.raises(InvalidTransition) as exc_info:
            validate_order_transition(current, requested)
        assert exc_info.value.current == current.value
        assert exc_info.value.requested == requested.value

    @pytest.mark.parametrize("terminal", [OrderStatus.COMPLETED, OrderStatus.CANCELLED])
    def test_terminal_states_allow_nothing(self, terminal):
        for target in OrderStatus:
            assert not can_transition_order(terminal, target)

    def test_accepts_raw_values(self):
        assert can_transition_order("PENDING", "CONFIRMED")


class TestKitchenBumpChain:
    """Tests for the linear kitchen ticket chain."""

    def test_chain_covers_every_status(self):
        assert set(KITCHEN_BUMP_CHAIN) == set(KitchenOrderStatus)

    def test_repeated_bumps_visit_chain_in_order(self):
        visited = []
        status = KitchenOrderStatus.NEW
        for _ in range(4):
            status = next_kitchen_status(status)
            visited.append(status)
        assert visited == [
            KitchenOrderStatus.VIEWED,
            KitchenOrderStatus.IN_PROGRESS,
            KitchenOrderStatus.READY,
            KitchenOrderStatus.SERVED,
        ]
        with pytest.raises(TerminalState):
            next_kitchen_status(status)

    def test_terminal_error_carries_status(self):
        with pytest.raises(TerminalState) as exc_info:
            next_kitchen_status(KitchenOrderStatus.SERVED)
        assert exc_info.value.to_dict()["current_status"] == "SERVED"

    def test_is_forward(self):
        assert is_forward(KitchenOrderStatus.NEW, KitchenOrderStatus.READY)
        assert is_forward(KitchenOrderStatus.VIEWED, KitchenOrderStatus.IN_PROGRESS)
        assert not is_forward(KitchenOrderStatus.READY, KitchenOrderStatus.READY)
        assert not is_forward(KitchenOrderStatus.SERVED, KitchenOrderStatus.READY)
