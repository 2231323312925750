"""
Kitchen fulfillment service

Features:
- Station management with per-station warning/critical thresholds
- Routing a confirmed order onto one ticket per station
- Bump bar: advance a ticket one step along NEW -> VIEWED -> IN_PROGRESS -> READY -> SERVED
- Item status updates with parent ticket rollup
- Station board with elapsed-time alerts
- Performance metrics (prep/wait averages, throughput)
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rms.core.config import settings
from rms.core.errors import InvalidRange, InvalidState, InvalidStatus, NotFound
from rms.models import (
    KitchenItemStatus,
    KitchenOrder,
    KitchenOrderItem,
    KitchenOrderStatus,
    KitchenStation,
    Location,
    MenuItem,
    Order,
    OrderStatus,
)
from rms.services.events import EventBus, EventType, event_bus
from rms.services.status_transitions import is_forward, next_kitchen_status
from rms.services.timing import (
    TicketTiming,
    as_utc,
    average_seconds,
    seconds_between,
    throughput_per_hour,
    ticket_timing,
    utc_now,
)

logger = logging.getLogger(__name__)

OPEN_TICKET_STATUSES = (
    KitchenOrderStatus.NEW,
    KitchenOrderStatus.VIEWED,
    KitchenOrderStatus.IN_PROGRESS,
)
COMPLETED_TICKET_STATUSES = (KitchenOrderStatus.READY, KitchenOrderStatus.SERVED)
ROUTABLE_ORDER_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.PREPARING)
_DONE_ITEM_STATUSES = (KitchenItemStatus.READY, KitchenItemStatus.CANCELLED)


def rollup_ticket(
    status: KitchenOrderStatus,
    received_at: datetime,
    started_at: Optional[datetime],
    wait_time: Optional[int],
    prep_time: Optional[int],
    item_statuses: Sequence[KitchenItemStatus],
    now: datetime,
) -> Dict[str, Any]:
    """Derive the parent ticket's new fields from its items.

    Returns only the fields that change; an empty dict means the ticket
    stays as it is. The result never moves ``status`` backwards and never
    overwrites an existing ``wait_time`` or ``prep_time``.
    """
    status = KitchenOrderStatus(status)
    statuses = [KitchenItemStatus(s) for s in item_statuses]
    updates: Dict[str, Any] = {}
    if not statuses:
        return updates

    all_done = all(s in _DONE_ITEM_STATUSES for s in statuses)
    any_preparing = any(s == KitchenItemStatus.PREPARING for s in statuses)

    if all_done and is_forward(status, KitchenOrderStatus.READY):
        updates["status"] = KitchenOrderStatus.READY
        updates["completed_at"] = now
        if prep_time is None and started_at is not None:
            updates["prep_time"] = seconds_between(started_at, now)
    elif any_preparing and status == KitchenOrderStatus.NEW:
        updates["status"] = KitchenOrderStatus.IN_PROGRESS
        if started_at is None:
            updates["started_at"] = now
        if wait_time is None:
            updates["wait_time"] = seconds_between(received_at, now)
    return updates


class KitchenService:
    """Kitchen ticket lifecycle backed by the database."""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utc_now,
        bus: EventBus = event_bus,
    ):
        self.db = db
        self.clock = clock
        self.bus = bus

    # ------------------------------------------------------------------
    # Stations
    # ------------------------------------------------------------------

    def list_stations(self, location_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Active stations by display order, each with its open-ticket count."""
        open_counts = (
            select(KitchenOrder.station_id, func.count(KitchenOrder.id).label("open_count"))
            .where(KitchenOrder.status.in_(OPEN_TICKET_STATUSES))
            .group_by(KitchenOrder.station_id)
            .subquery()
        )
        stmt = (
            select(KitchenStation, func.coalesce(open_counts.c.open_count, 0))
            .outerjoin(open_counts, open_counts.c.station_id == KitchenStation.id)
            .where(KitchenStation.is_active.is_(True))
            .order_by(KitchenStation.display_order, KitchenStation.id)
        )
        if location_id is not None:
            stmt = stmt.where(KitchenStation.location_id == location_id)
        return [
            {"station": station, "open_tickets": int(count)}
            for station, count in self.db.execute(stmt).all()
        ]

    def create_station(
        self,
        location_id: int,
        name: str,
        code: str,
        color: Optional[str] = None,
        warning_time: Optional[int] = None,
        critical_time: Optional[int] = None,
        display_order: int = 0,
    ) -> KitchenStation:
        if self.db.get(Location, location_id) is None:
            raise NotFound("Location", location_id)

        code = code.strip().upper()
        existing = self.db.scalar(select(KitchenStation.id).where(KitchenStation.code == code))
        if existing is not None:
            raise InvalidState("Station code already exists", {"code": code})

        station = KitchenStation(
            location_id=location_id,
            name=name,
            code=code,
            color=color,
            warning_time=warning_time if warning_time is not None else settings.kitchen_warning_minutes,
            critical_time=critical_time if critical_time is not None else settings.kitchen_critical_minutes,
            is_active=True,
            display_order=display_order,
        )
        try:
            self.db.add(station)
            self.db.commit()
            self.db.refresh(station)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create kitchen station {code}: {e}")
            raise
        logger.info(f"Created kitchen station {code} for location {location_id}")
        return station

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    def route_order(
        self,
        order_id: int,
        lines: Iterable[Dict[str, Any]],
        priority: int = 0,
    ) -> List[KitchenOrder]:
        """Create one NEW ticket per station for the given order lines.

        Each line is ``{"station_id", "menu_item_id", "quantity", "notes"}``.
        """
        lines = list(lines)
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFound("Order", order_id)
        if order.status not in ROUTABLE_ORDER_STATUSES:
            raise InvalidState(
                f"Order must be CONFIRMED or PREPARING to route, not {order.status.value}",
                {"current_status": order.status.value},
            )
        if not lines:
            raise InvalidRange("At least one item is required to route an order")

        by_station: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
        for line in lines:
            by_station[line["station_id"]].append(line)

        stations: Dict[int, KitchenStation] = {}
        for station_id in by_station:
            station = self.db.get(KitchenStation, station_id)
            if station is None:
                raise NotFound("KitchenStation", station_id)
            stations[station_id] = station
        for line in lines:
            if self.db.get(MenuItem, line["menu_item_id"]) is None:
                raise NotFound("MenuItem", line["menu_item_id"])

        now = self.clock()
        tickets: List[KitchenOrder] = []
        try:
            for station_id, station_lines in by_station.items():
                ticket = KitchenOrder(
                    ticket_number=f"{stations[station_id].code}-{order.order_number}",
                    order_id=order.id,
                    station_id=station_id,
                    status=KitchenOrderStatus.NEW,
                    priority=priority,
                    received_at=now,
                )
                for line in station_lines:
                    ticket.items.append(
                        KitchenOrderItem(
                            menu_item_id=line["menu_item_id"],
                            quantity=line.get("quantity") or 1,
                            notes=line.get("notes"),
                            status=KitchenItemStatus.PENDING,
                        )
                    )
                self.db.add(ticket)
                tickets.append(ticket)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to route order {order_id} to kitchen: {e}")
            raise

        logger.info(f"Routed order {order.order_number} to {len(tickets)} station(s)")
        for ticket in tickets:
            self.bus.emit(
                EventType.KITCHEN_ORDER_ROUTED,
                kitchen_order_id=ticket.id,
                order_id=order.id,
                station_id=ticket.station_id,
                ticket_number=ticket.ticket_number,
            )
        return tickets

    # ------------------------------------------------------------------
    # Bump bar
    # ------------------------------------------------------------------

    def get_kitchen_order(self, kitchen_order_id: int) -> KitchenOrder:
        ticket = self.db.get(KitchenOrder, kitchen_order_id)
        if ticket is None:
            raise NotFound("KitchenOrder", kitchen_order_id)
        return ticket

    def bump(self, kitchen_order_id: int) -> KitchenOrder:
        """Advance a ticket exactly one step along the bump chain."""
        ticket = self.get_kitchen_order(kitchen_order_id)
        previous = ticket.status
        target = next_kitchen_status(previous)
        now = self.clock()

        try:
            ticket.status = target
            if target == KitchenOrderStatus.VIEWED:
                ticket.viewed_at = now
            elif target == KitchenOrderStatus.IN_PROGRESS:
                ticket.started_at = now
                if ticket.wait_time is None:
                    ticket.wait_time = seconds_between(ticket.received_at, now)
            elif target == KitchenOrderStatus.READY:
                ticket.completed_at = now
                if ticket.prep_time is None and ticket.started_at is not None:
                    ticket.prep_time = seconds_between(ticket.started_at, now)
                for item in ticket.items:
                    if item.status != KitchenItemStatus.CANCELLED:
                        item.status = KitchenItemStatus.READY
                        item.completed_at = now
            elif target == KitchenOrderStatus.SERVED:
                ticket.served_at = now
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to bump kitchen order {kitchen_order_id}: {e}")
            raise

        logger.info(
            f"Bumped ticket {ticket.ticket_number}: {previous.value} -> {target.value}"
        )
        self.bus.emit(
            EventType.KITCHEN_ORDER_BUMPED,
            kitchen_order_id=ticket.id,
            order_id=ticket.order_id,
            station_id=ticket.station_id,
            previous_status=previous.value,
            status=target.value,
        )
        if target == KitchenOrderStatus.READY:
            self._emit_ready(ticket)
        return ticket

    # ------------------------------------------------------------------
    # Item status
    # ------------------------------------------------------------------

    def update_item_status(self, item_id: int, new_status: str) -> KitchenOrderItem:
        """Set one item's status, then re-derive its ticket's status.

        The item update is committed on its own. A failing rollup is logged
        and leaves the item update in place.
        """
        try:
            status = KitchenItemStatus(new_status)
        except ValueError:
            allowed = ", ".join(s.value for s in KitchenItemStatus)
            raise InvalidStatus(
                f"Status must be one of: {allowed}", {"status": new_status}
            ) from None

        item = self.db.get(KitchenOrderItem, item_id)
        if item is None:
            raise NotFound("KitchenOrderItem", item_id)

        now = self.clock()
        try:
            item.status = status
            if status == KitchenItemStatus.READY:
                item.completed_at = now
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update kitchen item {item_id}: {e}")
            raise

        logger.info(f"Kitchen item {item_id} -> {status.value}")
        self.bus.emit(
            EventType.KITCHEN_ITEM_UPDATED,
            item_id=item.id,
            kitchen_order_id=item.kitchen_order_id,
            status=status.value,
        )

        ticket = self._rollup(item.kitchen_order_id, now)
        if ticket is not None and ticket.status == KitchenOrderStatus.READY:
            self._emit_ready(ticket)
        return item

    def _rollup(self, kitchen_order_id: int, now: datetime) -> Optional[KitchenOrder]:
        """Apply the item rollup; returns the ticket only if its status changed."""
        try:
            ticket = self.db.get(KitchenOrder, kitchen_order_id)
            if ticket is None:
                return None
            updates = rollup_ticket(
                status=ticket.status,
                received_at=ticket.received_at,
                started_at=ticket.started_at,
                wait_time=ticket.wait_time,
                prep_time=ticket.prep_time,
                item_statuses=[i.status for i in ticket.items],
                now=now,
            )
            if not updates:
                return None
            previous = ticket.status
            for field, value in updates.items():
                setattr(ticket, field, value)
            self.db.commit()
            logger.info(
                f"Rolled up ticket {ticket.ticket_number}: "
                f"{previous.value} -> {ticket.status.value}"
            )
            return ticket
        except Exception:
            self.db.rollback()
            logger.exception(f"Kitchen order {kitchen_order_id} rollup failed")
            return None

    def _emit_ready(self, ticket: KitchenOrder) -> None:
        self.bus.emit(
            EventType.KITCHEN_ORDER_READY,
            kitchen_order_id=ticket.id,
            order_id=ticket.order_id,
            station_id=ticket.station_id,
            ticket_number=ticket.ticket_number,
        )

    # ------------------------------------------------------------------
    # Station board
    # ------------------------------------------------------------------

    def station_board(
        self,
        station_id: int,
        statuses: Optional[Sequence[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Open tickets for a station, most urgent first, with timing alerts."""
        station = self.db.get(KitchenStation, station_id)
        if station is None:
            raise NotFound("KitchenStation", station_id)

        if statuses:
            try:
                wanted = [KitchenOrderStatus(s) for s in statuses]
            except ValueError:
                raise InvalidStatus(
                    "Unknown kitchen order status filter", {"status": list(statuses)}
                ) from None
        else:
            wanted = list(OPEN_TICKET_STATUSES)

        tickets = self.db.scalars(
            select(KitchenOrder)
            .where(KitchenOrder.station_id == station_id, KitchenOrder.status.in_(wanted))
            .order_by(KitchenOrder.priority.desc(), KitchenOrder.received_at.asc())
        ).all()

        now = self.clock()
        board = []
        for ticket in tickets:
            timing: TicketTiming = ticket_timing(
                ticket.received_at,
                now,
                warning_minutes=station.warning_time,
                critical_minutes=station.critical_time,
            )
            board.append({"ticket": ticket, "timing": timing})
        return board

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def metrics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        station_id: Optional[int] = None,
        location_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Kitchen performance over a window of ticket receipt times."""
        end = as_utc(end) or self.clock()
        start = as_utc(start) or end - timedelta(hours=settings.kitchen_metrics_window_hours)
        if start > end:
            raise InvalidRange("start must not be after end")

        stmt = (
            select(KitchenOrder, KitchenStation.name)
            .join(KitchenStation, KitchenStation.id == KitchenOrder.station_id)
            .where(KitchenOrder.received_at >= start, KitchenOrder.received_at <= end)
        )
        pending_stmt = (
            select(func.count(KitchenOrder.id))
            .join(KitchenStation, KitchenStation.id == KitchenOrder.station_id)
            .where(KitchenOrder.status.in_(OPEN_TICKET_STATUSES))
        )
        if station_id is not None:
            stmt = stmt.where(KitchenOrder.station_id == station_id)
            pending_stmt = pending_stmt.where(KitchenOrder.station_id == station_id)
        if location_id is not None:
            stmt = stmt.where(KitchenStation.location_id == location_id)
            pending_stmt = pending_stmt.where(KitchenStation.location_id == location_id)

        rows = self.db.execute(stmt).all()
        pending = self.db.scalar(pending_stmt) or 0

        completed = [(t, name) for t, name in rows if t.status in COMPLETED_TICKET_STATUSES]
        avg_prep = average_seconds(t.prep_time for t, _ in completed)
        avg_wait = average_seconds(t.wait_time for t, _ in completed)

        per_station: Dict[int, Dict[str, Any]] = {}
        for ticket, name in completed:
            entry = per_station.setdefault(
                ticket.station_id,
                {"station_id": ticket.station_id, "station_name": name, "tickets": []},
            )
            entry["tickets"].append(ticket)

        by_station = []
        for entry in per_station.values():
            tickets = entry.pop("tickets")
            by_station.append({
                **entry,
                "orders_completed": len(tickets),
                "avg_prep_time_seconds": round(average_seconds(t.prep_time for t in tickets) or 0),
                "avg_wait_time_seconds": round(average_seconds(t.wait_time for t in tickets) or 0),
            })

        status_breakdown = Counter(t.status.value for t, _ in rows)

        return {
            "period": {"start": start, "end": end},
            "summary": {
                "total_orders_completed": len(completed),
                "pending_orders": int(pending),
                "orders_per_hour": round(throughput_per_hour(len(completed), start, end), 2),
                "avg_prep_time_seconds": round(avg_prep or 0),
                "avg_prep_time_minutes": round((avg_prep or 0) / 60, 1),
                "avg_wait_time_seconds": round(avg_wait or 0),
                "avg_wait_time_minutes": round((avg_wait or 0) / 60, 1),
            },
            "status_breakdown": dict(status_breakdown),
            "by_station": by_station,
        }
