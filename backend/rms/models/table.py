"""Physical table model and combination links."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from rms.db.base import Base
from rms.models.validators import positive, validate_id_list


class TableStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    CLEANING = "CLEANING"
    BLOCKED = "BLOCKED"


class Table(Base):
    """Restaurant table for seating.

    ``combinable_with`` holds the combination links: the primary table of a
    group stores every secondary id, each secondary stores ``[primary_id]``.
    """

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    area_id: Mapped[int] = mapped_column(
        ForeignKey("areas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    table_number: Mapped[str] = mapped_column(String(50), nullable=False)
    min_seats: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    max_seats: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    status: Mapped[TableStatus] = mapped_column(
        SQLEnum(TableStatus), default=TableStatus.AVAILABLE, nullable=False
    )
    combinable_with: Mapped[Optional[list]] = mapped_column(JSON(none_as_null=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    area: Mapped["Area"] = relationship("Area", back_populates="tables")

    @validates("min_seats", "max_seats")
    def _validate_seats(self, key, value):
        return positive(key, value)

    @validates("combinable_with")
    def _validate_links(self, key, value):
        return validate_id_list(key, value)

    @property
    def is_combined(self) -> bool:
        return self.combinable_with is not None
