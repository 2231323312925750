"""Tests for table combination and table status."""

import pytest

from rms.core.errors import (
    AlreadyCombined,
    CrossAreaCombination,
    InvalidRange,
    InvalidState,
    InvalidStatus,
    NotFound,
    NotInCombination,
)
from rms.models import TableStatus
from rms.services.table_service import TableService, group_capacity, is_secondary


@pytest.fixture
def tables_svc(db_session, bus) -> TableService:
    return TableService(db_session, bus=bus)


class TestCombine:
    def test_combine_links_primary_and_secondaries(self, db_session, tables_svc, bus, test_tables):
        t1, t2, t3 = test_tables
        result = tables_svc.combine([t1.id, t2.id, t3.id])

        assert result["primary_table"].id == t1.id
        assert result["combined_with"] == [t2.id, t3.id]
        assert result["capacity"] == {"min": 8, "max": 14}

        for table in test_tables:
            db_session.refresh(table)
        assert t1.combinable_with == [t2.id, t3.id]
        assert t1.status == TableStatus.RESERVED
        assert t2.combinable_with == [t1.id]
        assert t3.combinable_with == [t1.id]
        assert t2.status == TableStatus.BLOCKED
        assert t3.status == TableStatus.BLOCKED
        assert is_secondary(t2) and not is_secondary(t1)
        assert bus.types() == ["table.combined"]

    def test_requested_primary_status(self, tables_svc, test_tables):
        t1, t2, _ = test_tables
        result = tables_svc.combine([t1.id, t2.id], status="OCCUPIED")
        assert result["primary_table"].status == TableStatus.OCCUPIED

    def test_primary_cannot_be_blocked(self, tables_svc, test_tables):
        t1, t2, _ = test_tables
        with pytest.raises(InvalidStatus):
            tables_svc.combine([t1.id, t2.id], status="BLOCKED")

    def test_needs_two_tables(self, tables_svc, test_tables):
        with pytest.raises(InvalidRange):
            tables_svc.combine([test_tables[0].id])

    def test_duplicate_ids(self, tables_svc, test_tables):
        t1 = test_tables[0]
        with pytest.raises(InvalidRange):
            tables_svc.combine([t1.id, t1.id])

    def test_missing_table(self, tables_svc, test_tables):
        with pytest.raises(NotFound):
            tables_svc.combine([test_tables[0].id, 999])

    def test_cross_area(self, db_session, tables_svc, test_tables, patio_table):
        with pytest.raises(CrossAreaCombination):
            tables_svc.combine([test_tables[0].id, patio_table.id])
        db_session.refresh(test_tables[0])
        assert test_tables[0].combinable_with is None
        assert test_tables[0].status == TableStatus.AVAILABLE

    def test_already_combined(self, tables_svc, test_tables):
        t1, t2, t3 = test_tables
        tables_svc.combine([t1.id, t2.id])
        with pytest.raises(AlreadyCombined):
            tables_svc.combine([t2.id, t3.id])


class TestSeparate:
    def test_round_trip_restores_tables(self, db_session, tables_svc, bus, test_tables):
        t1, t2, t3 = test_tables
        tables_svc.combine([t1.id, t2.id, t3.id])

        members = tables_svc.separate(t1.id)

        assert sorted(m.id for m in members) == [t1.id, t2.id, t3.id]
        for table in test_tables:
            db_session.refresh(table)
            assert table.combinable_with is None
            assert table.status == TableStatus.AVAILABLE
        assert bus.types() == ["table.combined", "table.separated"]

    def test_separate_from_secondary(self, db_session, tables_svc, test_tables):
        t1, t2, t3 = test_tables
        tables_svc.combine([t1.id, t2.id, t3.id])

        members = tables_svc.separate(t3.id)

        assert {m.id for m in members} == {t1.id, t2.id, t3.id}
        db_session.refresh(t1)
        assert t1.combinable_with is None

    def test_not_combined(self, tables_svc, test_tables):
        with pytest.raises(NotInCombination):
            tables_svc.separate(test_tables[0].id)


class TestGroups:
    def test_resolve_group_primary_first(self, tables_svc, test_tables):
        t1, t2, t3 = test_tables
        tables_svc.combine([t3.id, t1.id, t2.id])
        group = tables_svc.resolve_group(t2)
        assert [t.id for t in group][0] == t3.id
        assert {t.id for t in group} == {t1.id, t2.id, t3.id}

    def test_list_tables_reports_group_capacity(self, tables_svc, test_tables, patio_table):
        t1, t2, t3 = test_tables
        tables_svc.combine([t1.id, t2.id])
        rows = {row["table"].id: row["capacity"] for row in tables_svc.list_tables()}
        assert rows[t1.id] == {"min": 4, "max": 8}
        assert rows[t2.id] == {"min": 4, "max": 8}
        assert rows[t3.id] == {"min": 4, "max": 6}
        assert rows[patio_table.id] == {"min": 2, "max": 2}

    def test_list_tables_filters(self, tables_svc, test_tables, patio_table, patio_area):
        rows = tables_svc.list_tables(area_id=patio_area.id)
        assert [row["table"].id for row in rows] == [patio_table.id]
        with pytest.raises(InvalidStatus):
            tables_svc.list_tables(status="DIRTY")

    def test_group_capacity(self, test_tables):
        assert group_capacity(test_tables) == {"min": 8, "max": 14}


class TestUpdateStatus:
    def test_sets_status(self, tables_svc, bus, test_tables):
        table = tables_svc.update_status(test_tables[0].id, "CLEANING")
        assert table.status == TableStatus.CLEANING
        event = bus.events[-1]
        assert event.data == {
            "table_id": table.id,
            "previous_status": "AVAILABLE",
            "status": "CLEANING",
        }

    def test_unknown_status(self, tables_svc, test_tables):
        with pytest.raises(InvalidStatus):
            tables_svc.update_status(test_tables[0].id, "DIRTY")

    def test_secondary_is_locked(self, tables_svc, test_tables):
        t1, t2, _ = test_tables
        tables_svc.combine([t1.id, t2.id])
        with pytest.raises(InvalidState):
            tables_svc.update_status(t2.id, "AVAILABLE")

    def test_primary_cannot_be_blocked(self, tables_svc, test_tables):
        t1, t2, _ = test_tables
        tables_svc.combine([t1.id, t2.id])
        with pytest.raises(InvalidState):
            tables_svc.update_status(t1.id, "BLOCKED")
        assert tables_svc.update_status(t1.id, "OCCUPIED").status == TableStatus.OCCUPIED
