"""Tests for the kitchen fulfillment engine.

Covers routing, the bump bar, item-driven rollups, the station board and
metrics, all against a fixed clock.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rms.core.errors import InvalidRange, InvalidState, InvalidStatus, NotFound, TerminalState
from rms.models import (
    KitchenItemStatus,
    KitchenOrderStatus,
    KitchenStation,
    Location,
    MenuItem,
    OrderStatus,
)
from rms.services.kitchen_service import KitchenService, rollup_ticket
from rms.services.timing import as_utc

from conftest import T0, RecordingBus, make_order


@pytest.fixture
def kitchen(db_session: Session, clock, bus) -> KitchenService:
    return KitchenService(db_session, clock=clock, bus=bus)


@pytest.fixture
def ticket(kitchen, test_order, test_station, test_menu_items):
    """A NEW ticket with three items, received at T0."""
    lines = [
        {"station_id": test_station.id, "menu_item_id": item.id, "quantity": 1}
        for item in test_menu_items
    ]
    return kitchen.route_order(test_order.id, lines)[0]


class TestRouteOrder:
    def test_creates_one_ticket_per_station(
        self, db_session, kitchen, bus, test_order, test_station, test_location, test_menu_items
    ):
        bar = KitchenStation(location_id=test_location.id, name="Bar", code="BAR")
        db_session.add(bar)
        db_session.commit()

        tickets = kitchen.route_order(
            test_order.id,
            [
                {"station_id": test_station.id, "menu_item_id": test_menu_items[0].id, "quantity": 2},
                {"station_id": bar.id, "menu_item_id": test_menu_items[1].id},
                {"station_id": test_station.id, "menu_item_id": test_menu_items[2].id, "notes": "well done"},
            ],
            priority=2,
        )

        assert len(tickets) == 2
        grill, bar_ticket = tickets
        assert grill.ticket_number == "GRILL-ORD-1001"
        assert bar_ticket.ticket_number == "BAR-ORD-1001"
        assert grill.status == KitchenOrderStatus.NEW
        assert grill.priority == 2
        assert as_utc(grill.received_at) == T0
        assert [i.quantity for i in grill.items] == [2, 1]
        assert grill.items[1].notes == "well done"
        assert all(i.status == KitchenItemStatus.PENDING for i in grill.items)
        assert bus.types().count("kitchen_order.routed") == 2

    def test_pending_order_rejected(self, db_session, kitchen, test_station, test_menu_items):
        order = make_order(db_session, order_number="ORD-2", status=OrderStatus.PENDING)
        with pytest.raises(InvalidState):
            kitchen.route_order(
                order.id, [{"station_id": test_station.id, "menu_item_id": test_menu_items[0].id}]
            )

    def test_empty_lines_rejected(self, kitchen, test_order):
        with pytest.raises(InvalidRange):
            kitchen.route_order(test_order.id, [])

    def test_unknown_station(self, kitchen, test_order, test_menu_items):
        with pytest.raises(NotFound) as exc_info:
            kitchen.route_order(
                test_order.id, [{"station_id": 999, "menu_item_id": test_menu_items[0].id}]
            )
        assert exc_info.value.entity == "KitchenStation"

    def test_unknown_order(self, kitchen):
        with pytest.raises(NotFound):
            kitchen.route_order(999, [{"station_id": 1, "menu_item_id": 1}])


class TestBump:
    def test_full_bump_sequence_with_timings(self, db_session, kitchen, clock, bus, ticket):
        first, second, third = ticket.items
        kitchen.update_item_status(third.id, "CANCELLED")
        bus.events.clear()

        clock.now = T0 + timedelta(seconds=30)
        bumped = kitchen.bump(ticket.id)
        assert bumped.status == KitchenOrderStatus.VIEWED
        assert as_utc(bumped.viewed_at) == clock.now

        clock.now = T0 + timedelta(seconds=90)
        bumped = kitchen.bump(ticket.id)
        assert bumped.status == KitchenOrderStatus.IN_PROGRESS
        assert bumped.wait_time == 90
        assert as_utc(bumped.started_at) == clock.now

        clock.now = T0 + timedelta(seconds=600)
        bumped = kitchen.bump(ticket.id)
        assert bumped.status == KitchenOrderStatus.READY
        assert bumped.prep_time == 510
        assert as_utc(bumped.completed_at) == clock.now

        db_session.refresh(first)
        db_session.refresh(second)
        db_session.refresh(third)
        for item in (first, second):
            assert item.status == KitchenItemStatus.READY
            assert as_utc(item.completed_at) == T0 + timedelta(seconds=600)
        assert third.status == KitchenItemStatus.CANCELLED
        assert third.completed_at is None

        clock.now = T0 + timedelta(seconds=700)
        bumped = kitchen.bump(ticket.id)
        assert bumped.status == KitchenOrderStatus.SERVED
        assert as_utc(bumped.served_at) == clock.now
        assert bumped.wait_time == 90
        assert bumped.prep_time == 510

        with pytest.raises(TerminalState):
            kitchen.bump(ticket.id)

        assert bus.types() == [
            "kitchen_order.bumped",
            "kitchen_order.bumped",
            "kitchen_order.bumped",
            "kitchen_order.ready",
            "kitchen_order.bumped",
        ]

    def test_bump_event_payload(self, kitchen, bus, ticket, test_station):
        bus.events.clear()
        kitchen.bump(ticket.id)
        event = bus.events[0]
        assert event.data["station_id"] == test_station.id
        assert event.data["previous_status"] == "NEW"
        assert event.data["status"] == "VIEWED"

    def test_bump_missing_ticket(self, kitchen):
        with pytest.raises(NotFound):
            kitchen.bump(12345)


class TestItemRollup:
    def test_preparing_item_starts_ticket(self, db_session, kitchen, clock, ticket):
        clock.advance(seconds=45)
        kitchen.update_item_status(ticket.items[0].id, "PREPARING")

        db_session.refresh(ticket)
        assert ticket.status == KitchenOrderStatus.IN_PROGRESS
        assert ticket.wait_time == 45
        assert as_utc(ticket.started_at) == T0 + timedelta(seconds=45)

    def test_all_items_ready_completes_ticket(self, db_session, kitchen, clock, bus, ticket):
        clock.advance(seconds=60)
        kitchen.update_item_status(ticket.items[0].id, "PREPARING")
        clock.advance(seconds=300)
        kitchen.update_item_status(ticket.items[0].id, "READY")
        kitchen.update_item_status(ticket.items[1].id, "READY")

        db_session.refresh(ticket)
        assert ticket.status == KitchenOrderStatus.IN_PROGRESS

        item = kitchen.update_item_status(ticket.items[2].id, "CANCELLED")
        assert item.status == KitchenItemStatus.CANCELLED

        db_session.refresh(ticket)
        assert ticket.status == KitchenOrderStatus.READY
        assert ticket.prep_time == 300
        assert ticket.wait_time == 60
        assert as_utc(ticket.completed_at) == T0 + timedelta(seconds=360)
        assert "kitchen_order.ready" in bus.types()

    def test_ready_item_is_stamped(self, kitchen, clock, ticket):
        clock.advance(seconds=120)
        item = kitchen.update_item_status(ticket.items[0].id, "READY")
        assert as_utc(item.completed_at) == T0 + timedelta(seconds=120)

    def test_rollup_never_moves_ticket_backwards(self, db_session, kitchen, ticket):
        for _ in range(3):
            kitchen.bump(ticket.id)
        db_session.refresh(ticket)
        assert ticket.status == KitchenOrderStatus.READY

        kitchen.update_item_status(ticket.items[0].id, "PREPARING")

        db_session.refresh(ticket)
        assert ticket.status == KitchenOrderStatus.READY

    def test_rollup_keeps_existing_wait_time(self, db_session, kitchen, clock, ticket):
        clock.advance(seconds=30)
        kitchen.bump(ticket.id)
        clock.advance(seconds=30)
        kitchen.bump(ticket.id)
        clock.advance(seconds=500)
        kitchen.update_item_status(ticket.items[0].id, "PREPARING")

        db_session.refresh(ticket)
        assert ticket.status == KitchenOrderStatus.IN_PROGRESS
        assert ticket.wait_time == 60

    def test_unknown_status(self, kitchen, ticket):
        with pytest.raises(InvalidStatus):
            kitchen.update_item_status(ticket.items[0].id, "BURNT")

    def test_missing_item(self, kitchen):
        with pytest.raises(NotFound):
            kitchen.update_item_status(999, "READY")

    def test_failed_rollup_keeps_item_update(self, db_session, kitchen, ticket, monkeypatch):
        def boom(**kwargs):
            raise RuntimeError("rollup exploded")

        monkeypatch.setattr("rms.services.kitchen_service.rollup_ticket", boom)
        item = kitchen.update_item_status(ticket.items[0].id, "PREPARING")

        db_session.refresh(item)
        db_session.refresh(ticket)
        assert item.status == KitchenItemStatus.PREPARING
        assert ticket.status == KitchenOrderStatus.NEW


class TestRollupTicket:
    """Tests for the pure rollup derivation."""

    def test_no_items_means_no_change(self):
        assert rollup_ticket(KitchenOrderStatus.NEW, T0, None, None, None, [], T0) == {}

    def test_all_cancelled_without_start(self):
        updates = rollup_ticket(
            KitchenOrderStatus.VIEWED, T0, None, None, None,
            [KitchenItemStatus.CANCELLED, KitchenItemStatus.CANCELLED],
            T0 + timedelta(minutes=5),
        )
        assert updates["status"] == KitchenOrderStatus.READY
        assert "prep_time" not in updates

    def test_prep_time_written_once(self):
        started = T0 + timedelta(seconds=60)
        updates = rollup_ticket(
            KitchenOrderStatus.IN_PROGRESS, T0, started, 60, 120,
            [KitchenItemStatus.READY],
            T0 + timedelta(minutes=20),
        )
        assert updates["status"] == KitchenOrderStatus.READY
        assert "prep_time" not in updates

    def test_preparing_only_promotes_new(self):
        updates = rollup_ticket(
            KitchenOrderStatus.VIEWED, T0, None, None, None,
            [KitchenItemStatus.PREPARING, KitchenItemStatus.PENDING],
            T0 + timedelta(seconds=10),
        )
        assert updates == {}

    def test_served_ticket_untouched(self):
        assert rollup_ticket(
            KitchenOrderStatus.SERVED, T0, T0, 0, 0, [KitchenItemStatus.READY], T0
        ) == {}


class TestStationBoard:
    def test_orders_by_priority_then_age(
        self, db_session, kitchen, clock, test_station, test_menu_items
    ):
        line = [{"station_id": test_station.id, "menu_item_id": test_menu_items[0].id}]
        first = kitchen.route_order(make_order(db_session, order_number="A").id, line)[0]
        clock.advance(minutes=5)
        second = kitchen.route_order(make_order(db_session, order_number="B").id, line)[0]
        clock.advance(minutes=1)
        rush = kitchen.route_order(make_order(db_session, order_number="C").id, line, priority=5)[0]
        clock.advance(minutes=5)

        board = kitchen.station_board(test_station.id)

        assert [row["ticket"].id for row in board] == [rush.id, first.id, second.id]
        oldest = board[1]["timing"]
        assert oldest.elapsed_minutes == 11
        assert oldest.is_warning and not oldest.is_critical

    def test_excludes_completed_tickets_by_default(self, kitchen, ticket, test_station):
        for _ in range(3):
            kitchen.bump(ticket.id)
        assert kitchen.station_board(test_station.id) == []
        ready = kitchen.station_board(test_station.id, ["READY"])
        assert [row["ticket"].id for row in ready] == [ticket.id]

    def test_bad_status_filter(self, kitchen, test_station):
        with pytest.raises(InvalidStatus):
            kitchen.station_board(test_station.id, ["COOKING"])

    def test_unknown_station(self, kitchen):
        with pytest.raises(NotFound):
            kitchen.station_board(999)


class TestStations:
    def test_create_station_defaults(self, kitchen, test_location):
        station = kitchen.create_station(test_location.id, "Tandoor", " tandoor ")
        assert station.code == "TANDOOR"
        assert station.warning_time == 10
        assert station.critical_time == 15

    def test_duplicate_code(self, kitchen, test_location, test_station):
        with pytest.raises(InvalidState):
            kitchen.create_station(test_location.id, "Grill 2", "grill")

    def test_list_with_open_counts(self, kitchen, ticket, test_station):
        rows = kitchen.list_stations()
        assert rows[0]["station"].id == test_station.id
        assert rows[0]["open_tickets"] == 1


class TestMetrics:
    def test_completed_ticket_metrics(self, kitchen, clock, ticket, test_station):
        clock.now = T0 + timedelta(seconds=30)
        kitchen.bump(ticket.id)
        clock.now = T0 + timedelta(seconds=90)
        kitchen.bump(ticket.id)
        clock.now = T0 + timedelta(seconds=600)
        kitchen.bump(ticket.id)

        result = kitchen.metrics(start=T0 - timedelta(hours=1), end=T0 + timedelta(hours=1))

        summary = result["summary"]
        assert summary["total_orders_completed"] == 1
        assert summary["pending_orders"] == 0
        assert summary["orders_per_hour"] == 0.5
        assert summary["avg_prep_time_seconds"] == 510
        assert summary["avg_prep_time_minutes"] == 8.5
        assert summary["avg_wait_time_seconds"] == 90
        assert result["status_breakdown"] == {"READY": 1}
        assert result["by_station"][0]["station_id"] == test_station.id
        assert result["by_station"][0]["orders_completed"] == 1

    def test_start_after_end(self, kitchen):
        with pytest.raises(InvalidRange):
            kitchen.metrics(start=T0, end=T0 - timedelta(minutes=1))


class TestConcurrentBump:
    """Two bump bars pressing the same ticket."""

    def test_stale_bump_is_rejected_and_nothing_skips(self, two_sessions):
        db_a, db_b = two_sessions
        location = Location(name="Clifton Branch")
        db_a.add(location)
        db_a.flush()
        station = KitchenStation(location_id=location.id, name="Grill", code="GRILL")
        item = MenuItem(name="Chicken Karahi", price=Decimal("18.00"))
        db_a.add_all([station, item])
        db_a.commit()
        order = make_order(db_a, location_id=location.id)
        ticket = KitchenService(db_a, bus=RecordingBus()).route_order(
            order.id, [{"station_id": station.id, "menu_item_id": item.id}]
        )[0]

        expo = KitchenService(db_b, bus=RecordingBus())
        assert expo.get_kitchen_order(ticket.id).status == KitchenOrderStatus.NEW

        KitchenService(db_a, bus=RecordingBus()).bump(ticket.id)
        with pytest.raises(StaleDataError):
            expo.bump(ticket.id)

        db_a.refresh(ticket)
        assert ticket.status == KitchenOrderStatus.VIEWED

        # After the rollback the second bar sees VIEWED and moves one step
        assert expo.bump(ticket.id).status == KitchenOrderStatus.IN_PROGRESS
