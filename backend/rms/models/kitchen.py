"""Kitchen display models - stations, tickets and ticket items."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer, String, Text, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from rms.db.base import Base, TimestampMixin
from rms.models.validators import non_negative, positive


class KitchenOrderStatus(str, Enum):
    NEW = "NEW"
    VIEWED = "VIEWED"
    IN_PROGRESS = "IN_PROGRESS"
    READY = "READY"
    SERVED = "SERVED"


class KitchenItemStatus(str, Enum):
    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    CANCELLED = "CANCELLED"


class KitchenStation(Base, TimestampMixin):
    """A preparation station (grill, bar, expo) with its own ticket board."""

    __tablename__ = "kitchen_stations"

    id: Mapped[int] = mapped_column(primary_key=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    # Minutes after receipt at which a ticket turns amber / red
    warning_time: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    critical_time: Mapped[int] = mapped_column(Integer, default=15, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    kitchen_orders: Mapped[list["KitchenOrder"]] = relationship(
        "KitchenOrder", back_populates="station"
    )

    @validates("warning_time", "critical_time")
    def _validate_thresholds(self, key, value):
        return non_negative(key, value)


class KitchenOrder(Base):
    """One station's ticket for an order.

    ``wait_time`` (order received -> started) and ``prep_time``
    (started -> ready) are in seconds and written once.
    """

    __tablename__ = "kitchen_orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    ticket_number: Mapped[str] = mapped_column(String(30), nullable=False)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    station_id: Mapped[int] = mapped_column(
        ForeignKey("kitchen_stations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[KitchenOrderStatus] = mapped_column(
        SQLEnum(KitchenOrderStatus), default=KitchenOrderStatus.NEW, nullable=False, index=True
    )
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    served_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    wait_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    prep_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="kitchen_orders")
    station: Mapped["KitchenStation"] = relationship("KitchenStation", back_populates="kitchen_orders")
    items: Mapped[list["KitchenOrderItem"]] = relationship(
        "KitchenOrderItem",
        back_populates="kitchen_order",
        cascade="all, delete-orphan",
        order_by="KitchenOrderItem.id",
    )


class KitchenOrderItem(Base):
    """A single line on a kitchen ticket."""

    __tablename__ = "kitchen_order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    kitchen_order_id: Mapped[int] = mapped_column(
        ForeignKey("kitchen_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[int] = mapped_column(
        ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    status: Mapped[KitchenItemStatus] = mapped_column(
        SQLEnum(KitchenItemStatus), default=KitchenItemStatus.PENDING, nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    kitchen_order: Mapped["KitchenOrder"] = relationship("KitchenOrder", back_populates="items")
    menu_item: Mapped["MenuItem"] = relationship("MenuItem")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)
