"""Location and seating area models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rms.db.base import Base


class Location(Base):
    """A restaurant branch. Waitlists, stations and areas belong to one."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Bumped by every waitlist write at this location; joins and reindexes compare-and-set it
    waitlist_revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    areas: Mapped[list["Area"]] = relationship("Area", back_populates="location")


class Area(Base):
    """A seating area (Main Floor, Patio, ...) grouping tables."""

    __tablename__ = "areas"

    id: Mapped[int] = mapped_column(primary_key=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_order: Mapped[int] = mapped_column(default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    location: Mapped["Location"] = relationship("Location", back_populates="areas")
    tables: Mapped[list["Table"]] = relationship("Table", back_populates="area")
