"""
Table combination service

A combined group is one primary table plus its secondaries. The primary's
``combinable_with`` lists every secondary id; each secondary points back
with ``[primary_id]`` and is held BLOCKED for as long as the group exists.
Every change to a group is written in a single commit.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from rms.core.errors import (
    AlreadyCombined,
    CrossAreaCombination,
    InvalidRange,
    InvalidState,
    InvalidStatus,
    NotFound,
    NotInCombination,
)
from rms.models import Area, Table, TableStatus
from rms.services.events import EventBus, EventType, event_bus

logger = logging.getLogger(__name__)


def parse_table_status(value: Any) -> TableStatus:
    try:
        return TableStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in TableStatus)
        raise InvalidStatus(f"Status must be one of: {allowed}", {"status": value}) from None


def is_secondary(table: Table) -> bool:
    return table.combinable_with is not None and table.status == TableStatus.BLOCKED


def group_capacity(tables: Sequence[Table]) -> Dict[str, int]:
    return {
        "min": sum(t.min_seats for t in tables),
        "max": sum(t.max_seats for t in tables),
    }


class TableService:
    def __init__(self, db: Session, bus: EventBus = event_bus):
        self.db = db
        self.bus = bus

    def get_table(self, table_id: int) -> Table:
        table = self.db.get(Table, table_id)
        if table is None:
            raise NotFound("Table", table_id)
        return table

    def resolve_group(self, table: Table) -> List[Table]:
        """Every member of ``table``'s combined group, primary first.

        Works from either a primary or a secondary.
        """
        if table.combinable_with is None:
            return [table]

        member_ids: Set[int] = {table.id, *table.combinable_with}
        for linked_id in list(table.combinable_with):
            linked = self.db.get(Table, linked_id)
            if linked is not None and linked.combinable_with:
                member_ids.update(linked.combinable_with)

        members = self.db.scalars(
            select(Table).where(Table.id.in_(member_ids)).order_by(Table.id)
        ).all()
        # Primary is the one member that is not a blocked secondary
        members = sorted(members, key=lambda t: (is_secondary(t), t.id))
        return list(members)

    def list_tables(
        self,
        area_id: Optional[int] = None,
        location_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Tables with the seat capacity of the group each belongs to."""
        stmt = select(Table).order_by(Table.area_id, Table.table_number)
        if area_id is not None:
            stmt = stmt.where(Table.area_id == area_id)
        if location_id is not None:
            stmt = stmt.join(Area, Area.id == Table.area_id).where(Area.location_id == location_id)
        if status is not None:
            stmt = stmt.where(Table.status == parse_table_status(status))

        result = []
        for table in self.db.scalars(stmt).all():
            group = self.resolve_group(table)
            result.append({"table": table, "capacity": group_capacity(group)})
        return result

    def combine(self, table_ids: Sequence[int], status: Optional[str] = None) -> Dict[str, Any]:
        """Link tables into one group; the first id becomes the primary."""
        table_ids = list(table_ids)
        if len(table_ids) < 2:
            raise InvalidRange("At least 2 table IDs are required")
        if len(set(table_ids)) != len(table_ids):
            raise InvalidRange("Table IDs must be unique")

        primary_status = parse_table_status(status) if status else TableStatus.RESERVED
        if primary_status == TableStatus.BLOCKED:
            raise InvalidStatus(
                "A combined group's primary table cannot be BLOCKED",
                {"status": primary_status.value},
            )

        found = {
            t.id: t
            for t in self.db.scalars(select(Table).where(Table.id.in_(table_ids))).all()
        }
        for table_id in table_ids:
            if table_id not in found:
                raise NotFound("Table", table_id)
        tables = [found[i] for i in table_ids]

        if len({t.area_id for t in tables}) > 1:
            raise CrossAreaCombination("All tables must be in the same area")
        if any(t.combinable_with is not None for t in tables):
            raise AlreadyCombined(
                "One or more tables are already combined",
                {"table_ids": [t.id for t in tables if t.combinable_with is not None]},
            )

        primary, secondaries = tables[0], tables[1:]
        secondary_ids = [t.id for t in secondaries]
        try:
            primary.combinable_with = secondary_ids
            primary.status = primary_status
            for table in secondaries:
                table.combinable_with = [primary.id]
                table.status = TableStatus.BLOCKED
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to combine tables {table_ids}: {e}")
            raise

        capacity = group_capacity(tables)
        logger.info(f"Combined tables {table_ids} under primary {primary.id}")
        self.bus.emit(
            EventType.TABLE_COMBINED,
            primary_table_id=primary.id,
            combined_with=secondary_ids,
            area_id=primary.area_id,
            capacity=capacity,
        )
        return {
            "primary_table": primary,
            "combined_with": secondary_ids,
            "capacity": capacity,
        }

    def separate(self, table_id: int) -> List[Table]:
        """Dissolve the group ``table_id`` belongs to; every member becomes AVAILABLE."""
        table = self.get_table(table_id)
        if table.combinable_with is None:
            raise NotInCombination("Table is not combined", {"table_id": table_id})

        members = self.resolve_group(table)
        try:
            for member in members:
                member.combinable_with = None
                member.status = TableStatus.AVAILABLE
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to separate table group of {table_id}: {e}")
            raise

        member_ids = [m.id for m in members]
        logger.info(f"Separated table group {member_ids}")
        self.bus.emit(EventType.TABLE_SEPARATED, table_ids=member_ids)
        return members

    def update_status(self, table_id: int, status: str) -> Table:
        """Set a table's status directly.

        Secondaries of a combined group are locked to BLOCKED until the group
        is separated.
        """
        new_status = parse_table_status(status)
        table = self.get_table(table_id)
        if is_secondary(table):
            raise InvalidState(
                "Table is part of a combined group; separate it first",
                {"table_id": table_id, "primary_table_id": table.combinable_with[0]},
            )
        if table.combinable_with is not None and new_status == TableStatus.BLOCKED:
            raise InvalidState(
                "The primary table of a combined group cannot be BLOCKED",
                {"table_id": table_id},
            )

        previous = table.status
        try:
            table.status = new_status
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update table {table_id} status: {e}")
            raise

        logger.info(f"Table {table.table_number}: {previous.value} -> {new_status.value}")
        self.bus.emit(
            EventType.TABLE_STATUS_CHANGED,
            table_id=table.id,
            previous_status=previous.value,
            status=new_status.value,
        )
        return table
