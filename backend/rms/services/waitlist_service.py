"""
Waitlist sequencing service

Positions of a location's active (WAITING / NOTIFIED) entries always run
1..N with no gaps. Removing an entry (seat or cancel) closes the gap in the
same commit as the removal itself.
"""

import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from rms.core.config import settings
from rms.core.errors import (
    CapacityExceeded,
    ConcurrentUpdate,
    InvalidState,
    InvalidType,
    NotFound,
    TableUnavailable,
)
from rms.models import (
    ACTIVE_WAITLIST_STATUSES,
    Location,
    NotificationMethod,
    Table,
    TableStatus,
    WaitlistEntry,
    WaitlistStatus,
)
from rms.services.events import EventBus, EventType, event_bus
from rms.services.timing import seconds_between, utc_now

logger = logging.getLogger(__name__)

JOIN_ATTEMPTS = 3


def minutes_per_party(
    avg_turnover_minutes: Optional[int] = None,
    parallel_parties: Optional[int] = None,
) -> int:
    turnover = avg_turnover_minutes or settings.waitlist_avg_turnover_minutes
    parallel = parallel_parties or settings.waitlist_parallel_parties
    return math.ceil(turnover / parallel)


def quote_wait_minutes(position: int, **policy: Any) -> int:
    """Quoted wait for a party at ``position``.

    Assumes ``parallel_parties`` tables turn over at the same time.
    """
    return position * minutes_per_party(**policy)


class WaitlistService:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utc_now,
        bus: EventBus = event_bus,
    ):
        self.db = db
        self.clock = clock
        self.bus = bus

    def get_entry(self, entry_id: int) -> WaitlistEntry:
        entry = self.db.get(WaitlistEntry, entry_id)
        if entry is None:
            raise NotFound("WaitlistEntry", entry_id)
        return entry

    def active_entries(self, location_id: int) -> List[WaitlistEntry]:
        return list(
            self.db.scalars(
                select(WaitlistEntry)
                .where(
                    WaitlistEntry.location_id == location_id,
                    WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
                )
                .order_by(WaitlistEntry.position)
            ).all()
        )

    def list_waitlist(self, location_id: int) -> List[Dict[str, Any]]:
        """Active entries by position with a current wait estimate."""
        per_party = minutes_per_party()
        return [
            {"entry": entry, "estimated_wait_minutes": (idx + 1) * per_party}
            for idx, entry in enumerate(self.active_entries(location_id))
        ]

    def join(
        self,
        location_id: int,
        guest_name: str,
        guest_phone: str,
        party_size: int,
        seating_preference: Optional[str] = None,
        notes: Optional[str] = None,
        customer_id: Optional[int] = None,
    ) -> WaitlistEntry:
        """Append a party at the end of the line.

        A seat, cancel or join committed at the same location between reading
        the last position and committing bumps the revision, and the join
        starts over on the fresh queue.
        """
        for attempt in range(1, JOIN_ATTEMPTS + 1):
            revision = self._read_revision(location_id)
            max_position = self.db.scalar(
                select(func.max(WaitlistEntry.position)).where(
                    WaitlistEntry.location_id == location_id,
                    WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
                )
            )
            position = (max_position or 0) + 1

            entry = WaitlistEntry(
                location_id=location_id,
                customer_id=customer_id,
                guest_name=guest_name,
                guest_phone=guest_phone,
                party_size=party_size,
                position=position,
                quoted_wait_time=quote_wait_minutes(position),
                seating_preference=seating_preference,
                notes=notes,
                status=WaitlistStatus.WAITING,
                joined_at=self.clock(),
            )
            try:
                self.db.add(entry)
                claimed = self._bump_revision(location_id, revision)
                if claimed:
                    self.db.commit()
                    self.db.refresh(entry)
                else:
                    self.db.rollback()
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to add {guest_name} to waitlist at location {location_id}: {e}")
                raise
            if claimed:
                break
            logger.warning(
                f"Waitlist at location {location_id} changed during join (attempt {attempt})"
            )
        else:
            raise self._conflict(location_id)

        logger.info(
            f"Waitlist join: entry {entry.id} party of {party_size} at position {position}"
        )
        self.bus.emit(
            EventType.WAITLIST_JOINED,
            entry_id=entry.id,
            location_id=location_id,
            position=position,
            quoted_wait_time=entry.quoted_wait_time,
        )
        return entry

    def notify(self, entry_id: int, method: Optional[str] = None) -> WaitlistEntry:
        entry = self.get_entry(entry_id)
        if entry.status != WaitlistStatus.WAITING:
            raise InvalidState(
                f"Cannot notify entry with status: {entry.status.value}",
                {"current_status": entry.status.value},
            )
        try:
            notification_method = NotificationMethod(method or NotificationMethod.SMS)
        except ValueError:
            raise InvalidType(
                f"Unknown notification method: {method}", {"notification_method": method}
            ) from None

        try:
            entry.status = WaitlistStatus.NOTIFIED
            entry.notified_at = self.clock()
            entry.notification_method = notification_method
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to notify waitlist entry {entry_id}: {e}")
            raise

        logger.info(f"Waitlist entry {entry_id} notified via {notification_method.value}")
        self.bus.emit(
            EventType.WAITLIST_NOTIFIED,
            entry_id=entry.id,
            location_id=entry.location_id,
            guest_name=entry.guest_name,
            guest_phone=entry.guest_phone,
            method=notification_method.value,
        )
        return entry

    def seat(self, entry_id: int, table_id: int) -> Dict[str, Any]:
        """Seat a party at a table and close its gap in the queue."""
        entry = self.get_entry(entry_id)
        if entry.status not in ACTIVE_WAITLIST_STATUSES:
            raise InvalidState(
                f"Cannot seat entry with status: {entry.status.value}",
                {"current_status": entry.status.value},
            )

        table = self.db.get(Table, table_id)
        if table is None:
            raise NotFound("Table", table_id)
        if table.status != TableStatus.AVAILABLE:
            raise TableUnavailable(
                f"Table is not available. Current status: {table.status.value}",
                {"table_id": table_id, "table_status": table.status.value},
            )
        if table.max_seats < entry.party_size:
            raise CapacityExceeded(
                f"Table capacity ({table.max_seats}) is less than party size ({entry.party_size})",
                {"max_seats": table.max_seats, "party_size": entry.party_size},
            )

        revision = self._read_revision(entry.location_id)
        now = self.clock()
        former_position = entry.position
        try:
            entry.status = WaitlistStatus.SEATED
            entry.seated_at = now
            entry.table_id = table.id
            entry.actual_wait_time = seconds_between(entry.joined_at, now) // 60
            table.status = TableStatus.OCCUPIED
            shifted = self._close_gap(entry.location_id, former_position, exclude_id=entry.id)
            claimed = self._bump_revision(entry.location_id, revision)
            if claimed:
                self.db.commit()
            else:
                self.db.rollback()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to seat waitlist entry {entry_id}: {e}")
            raise
        if not claimed:
            raise self._conflict(entry.location_id)

        logger.info(
            f"Seated waitlist entry {entry_id} at table {table.table_number} "
            f"after {entry.actual_wait_time} min, {shifted} entries moved up"
        )
        self.bus.emit(
            EventType.WAITLIST_SEATED,
            entry_id=entry.id,
            location_id=entry.location_id,
            table_id=table.id,
            actual_wait_time=entry.actual_wait_time,
        )
        self.bus.emit(
            EventType.TABLE_STATUS_CHANGED,
            table_id=table.id,
            previous_status=TableStatus.AVAILABLE.value,
            status=TableStatus.OCCUPIED.value,
        )
        return {"entry": entry, "table": table, "actual_wait_minutes": entry.actual_wait_time}

    def cancel(self, entry_id: int) -> WaitlistEntry:
        entry = self.get_entry(entry_id)
        if entry.status not in ACTIVE_WAITLIST_STATUSES:
            raise InvalidState(
                f"Cannot cancel entry with status: {entry.status.value}",
                {"current_status": entry.status.value},
            )

        revision = self._read_revision(entry.location_id)
        former_position = entry.position
        try:
            entry.status = WaitlistStatus.CANCELLED
            entry.cancelled_at = self.clock()
            self._close_gap(entry.location_id, former_position, exclude_id=entry.id)
            claimed = self._bump_revision(entry.location_id, revision)
            if claimed:
                self.db.commit()
            else:
                self.db.rollback()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to cancel waitlist entry {entry_id}: {e}")
            raise
        if not claimed:
            raise self._conflict(entry.location_id)

        logger.info(f"Cancelled waitlist entry {entry_id} (was position {former_position})")
        self.bus.emit(
            EventType.WAITLIST_CANCELLED,
            entry_id=entry.id,
            location_id=entry.location_id,
        )
        return entry

    def _close_gap(self, location_id: int, removed_position: int, exclude_id: int) -> int:
        """Move every active entry behind ``removed_position`` up by one.

        Runs inside the caller's transaction; does not commit.
        """
        behind = self.db.scalars(
            select(WaitlistEntry).where(
                WaitlistEntry.location_id == location_id,
                WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
                WaitlistEntry.position > removed_position,
                WaitlistEntry.id != exclude_id,
            )
        ).all()
        for other in behind:
            other.position -= 1
        return len(behind)

    def _read_revision(self, location_id: int) -> int:
        revision = self.db.scalar(
            select(Location.waitlist_revision).where(Location.id == location_id).with_for_update()
        )
        if revision is None:
            raise NotFound("Location", location_id)
        return revision

    def _bump_revision(self, location_id: int, seen: int) -> bool:
        """Compare-and-set the location's waitlist revision; False if someone got there first.

        Runs inside the caller's transaction; does not commit.
        """
        result = self.db.execute(
            update(Location)
            .where(Location.id == location_id, Location.waitlist_revision == seen)
            .values(waitlist_revision=seen + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def _conflict(location_id: int) -> ConcurrentUpdate:
        return ConcurrentUpdate(
            "The waitlist changed while this request was in flight; retry",
            {"location_id": location_id},
        )
