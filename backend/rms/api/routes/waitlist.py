"""Waitlist routes - join, notify, seat and cancel."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from rms.core.rate_limit import limiter
from rms.core.responses import list_response
from rms.db.session import DbSession
from rms.schemas.waitlist import (
    NotifyRequest,
    SeatRequest,
    SeatResponse,
    WaitlistEntryResponse,
    WaitlistJoin,
    WaitlistListEntry,
)
from rms.services.waitlist_service import WaitlistService

router = APIRouter()


def get_waitlist_service(db: DbSession) -> WaitlistService:
    return WaitlistService(db)


Waitlist = Annotated[WaitlistService, Depends(get_waitlist_service)]


@router.get("/")
def list_waitlist(waitlist: Waitlist, location_id: int):
    """Active entries by position with current wait estimates."""
    entries = [
        WaitlistListEntry(
            **WaitlistEntryResponse.model_validate(row["entry"]).model_dump(),
            estimated_wait_minutes=row["estimated_wait_minutes"],
        )
        for row in waitlist.list_waitlist(location_id)
    ]
    return list_response(entries)


@router.post("/", response_model=WaitlistEntryResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def join_waitlist(request: Request, data: WaitlistJoin, waitlist: Waitlist):
    return waitlist.join(**data.model_dump())


@router.post("/{entry_id}/notify", response_model=WaitlistEntryResponse)
def notify_party(entry_id: int, waitlist: Waitlist, data: NotifyRequest = NotifyRequest()):
    """Mark a waiting party notified; the guest message goes out after commit."""
    return waitlist.notify(entry_id, data.notification_method)


@router.post("/{entry_id}/seat", response_model=SeatResponse)
@limiter.limit("60/minute")
def seat_party(request: Request, entry_id: int, data: SeatRequest, waitlist: Waitlist):
    return waitlist.seat(entry_id, data.table_id)


@router.post("/{entry_id}/cancel", response_model=WaitlistEntryResponse)
def cancel_entry(entry_id: int, waitlist: Waitlist):
    return waitlist.cancel(entry_id)
