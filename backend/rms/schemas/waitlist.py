"""Waitlist schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from rms.models.waitlist import NotificationMethod, WaitlistStatus
from rms.schemas.table import TableResponse


class WaitlistJoin(BaseModel):
    location_id: int
    guest_name: str = Field(min_length=1, max_length=200)
    guest_phone: str = Field(min_length=3, max_length=50)
    party_size: int = Field(gt=0)
    seating_preference: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None
    customer_id: Optional[int] = None


class WaitlistEntryResponse(BaseModel):
    id: int
    location_id: int
    customer_id: Optional[int] = None
    guest_name: str
    guest_phone: str
    party_size: int
    position: int
    quoted_wait_time: int
    seating_preference: Optional[str] = None
    notes: Optional[str] = None
    status: WaitlistStatus
    notification_method: Optional[NotificationMethod] = None
    table_id: Optional[int] = None
    joined_at: datetime
    notified_at: Optional[datetime] = None
    seated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    actual_wait_time: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class WaitlistListEntry(WaitlistEntryResponse):
    estimated_wait_minutes: int


class NotifyRequest(BaseModel):
    notification_method: Optional[str] = None


class SeatRequest(BaseModel):
    table_id: int


class SeatResponse(BaseModel):
    message: str = "Party seated successfully"
    entry: WaitlistEntryResponse
    table: TableResponse
    actual_wait_minutes: int
