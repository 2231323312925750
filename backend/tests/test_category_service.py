"""Tests for category reordering."""

import pytest

from rms.core.errors import InvalidRange, NotFound
from rms.models import Category
from rms.services.category_service import CategoryService


@pytest.fixture
def categories(db_session):
    rows = [
        Category(name="Starters", display_order=0),
        Category(name="Mains", display_order=1),
        Category(name="Desserts", display_order=2, active=False),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


class TestCategoryService:
    def test_list_orders_by_display_order(self, db_session, categories):
        service = CategoryService(db_session)
        assert [c.name for c in service.list_categories()] == ["Starters", "Mains", "Desserts"]
        assert [c.name for c in service.list_categories(active_only=True)] == ["Starters", "Mains"]

    def test_reorder(self, db_session, categories):
        starters, mains, desserts = categories
        result = CategoryService(db_session).reorder(
            [
                {"id": desserts.id, "display_order": 0},
                {"id": starters.id, "display_order": 1},
                {"id": mains.id, "display_order": 2},
            ]
        )
        assert [c.name for c in result] == ["Desserts", "Starters", "Mains"]

    def test_empty(self, db_session):
        with pytest.raises(InvalidRange):
            CategoryService(db_session).reorder([])

    def test_duplicate_display_order(self, db_session, categories):
        starters, mains, _ = categories
        with pytest.raises(InvalidRange):
            CategoryService(db_session).reorder(
                [{"id": starters.id, "display_order": 3}, {"id": mains.id, "display_order": 3}]
            )

    def test_duplicate_ids(self, db_session, categories):
        starters = categories[0]
        with pytest.raises(InvalidRange):
            CategoryService(db_session).reorder(
                [{"id": starters.id, "display_order": 3}, {"id": starters.id, "display_order": 4}]
            )

    def test_missing_id_changes_nothing(self, db_session, categories):
        starters = categories[0]
        with pytest.raises(NotFound):
            CategoryService(db_session).reorder(
                [{"id": starters.id, "display_order": 9}, {"id": 999, "display_order": 0}]
            )
        db_session.refresh(starters)
        assert starters.display_order == 0
