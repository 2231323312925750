"""Menu category ordering."""

import logging
from typing import Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from rms.core.errors import InvalidRange, NotFound
from rms.models import Category

logger = logging.getLogger(__name__)


class CategoryService:
    def __init__(self, db: Session):
        self.db = db

    def list_categories(self, active_only: bool = False) -> List[Category]:
        stmt = select(Category).order_by(Category.display_order, Category.id)
        if active_only:
            stmt = stmt.where(Category.active.is_(True))
        return list(self.db.scalars(stmt).all())

    def reorder(self, positions: Sequence[Dict[str, int]]) -> List[Category]:
        """Assign ``display_order`` to each ``{"id", "display_order"}`` in one commit.

        Every id must exist and no two categories may share a display order.
        """
        if not positions:
            raise InvalidRange("At least one category is required")

        ids = [p["id"] for p in positions]
        if len(set(ids)) != len(ids):
            raise InvalidRange("Duplicate category ids are not allowed")
        orders = [p["display_order"] for p in positions]
        if len(set(orders)) != len(orders):
            raise InvalidRange("Duplicate display orders are not allowed")

        found = {
            c.id: c for c in self.db.scalars(select(Category).where(Category.id.in_(ids))).all()
        }
        missing = [i for i in ids if i not in found]
        if missing:
            raise NotFound("Category", missing[0] if len(missing) == 1 else missing)

        try:
            for position in positions:
                found[position["id"]].display_order = position["display_order"]
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to reorder categories: {e}")
            raise

        logger.info(f"Reordered {len(positions)} categories")
        return self.list_categories()
