"""Waitlist model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from rms.db.base import Base
from rms.models.validators import positive


class WaitlistStatus(str, Enum):
    WAITING = "WAITING"
    NOTIFIED = "NOTIFIED"
    SEATED = "SEATED"
    CANCELLED = "CANCELLED"


ACTIVE_WAITLIST_STATUSES = (WaitlistStatus.WAITING, WaitlistStatus.NOTIFIED)


class NotificationMethod(str, Enum):
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"
    APP = "APP"


class WaitlistEntry(Base):
    """A walk-in party waiting for a table.

    ``position`` is 1-based and dense across the location's WAITING and
    NOTIFIED entries.
    """

    __tablename__ = "waitlist_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    guest_name: Mapped[str] = mapped_column(String(200), nullable=False)
    guest_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    quoted_wait_time: Mapped[int] = mapped_column(Integer, nullable=False)
    seating_preference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[WaitlistStatus] = mapped_column(
        SQLEnum(WaitlistStatus), default=WaitlistStatus.WAITING, nullable=False, index=True
    )
    notification_method: Mapped[Optional[NotificationMethod]] = mapped_column(
        SQLEnum(NotificationMethod), nullable=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tables.id", ondelete="SET NULL"), nullable=True
    )

    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    seated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_wait_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    table: Mapped[Optional["Table"]] = relationship("Table")

    @validates("party_size", "position")
    def _validate_positive(self, key, value):
        return positive(key, value)
