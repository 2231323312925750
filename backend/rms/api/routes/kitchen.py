"""Kitchen display routes - stations, ticket board, bump bar and metrics."""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from rms.core.rate_limit import limiter
from rms.core.responses import list_response
from rms.db.session import DbSession
from rms.schemas.kitchen import (
    BoardTicket,
    ItemStatusUpdate,
    KitchenItemResponse,
    KitchenMetricsResponse,
    KitchenOrderResponse,
    RouteOrderRequest,
    StationCreate,
    StationResponse,
    StationWithLoad,
)
from rms.services.kitchen_service import KitchenService

router = APIRouter()
tickets_router = APIRouter()


def get_kitchen_service(db: DbSession) -> KitchenService:
    return KitchenService(db)


Kitchen = Annotated[KitchenService, Depends(get_kitchen_service)]


@router.get("/stations")
def list_stations(kitchen: Kitchen, location_id: Optional[int] = None):
    """Active stations with their open-ticket count."""
    stations = [
        StationWithLoad(
            **StationResponse.model_validate(row["station"]).model_dump(),
            open_tickets=row["open_tickets"],
        )
        for row in kitchen.list_stations(location_id)
    ]
    return list_response(stations)


@router.post("/stations", response_model=StationResponse, status_code=status.HTTP_201_CREATED)
def create_station(data: StationCreate, kitchen: Kitchen):
    return kitchen.create_station(**data.model_dump())


@router.get("/orders")
def station_board(
    kitchen: Kitchen,
    station_id: int,
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """Open tickets for a station, most urgent first, with elapsed-time alerts.

    ``status`` takes a comma-separated list; defaults to NEW,VIEWED,IN_PROGRESS.
    """
    statuses = [s.strip() for s in status_filter.split(",") if s.strip()] if status_filter else None
    tickets = [
        BoardTicket(
            **KitchenOrderResponse.model_validate(row["ticket"]).model_dump(),
            timing=row["timing"].to_dict(),
        )
        for row in kitchen.station_board(station_id, statuses)
    ]
    return list_response(tickets)


@router.post(
    "/orders/route",
    response_model=list[KitchenOrderResponse],
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("60/minute")
def route_order(request: Request, data: RouteOrderRequest, kitchen: Kitchen):
    """Send a confirmed order's lines to their stations, one ticket per station."""
    return kitchen.route_order(
        data.order_id,
        [line.model_dump() for line in data.lines],
        priority=data.priority,
    )


@tickets_router.get("/{kitchen_order_id}", response_model=KitchenOrderResponse)
def get_kitchen_order(kitchen_order_id: int, kitchen: Kitchen):
    return kitchen.get_kitchen_order(kitchen_order_id)


@tickets_router.post("/{kitchen_order_id}/bump", response_model=KitchenOrderResponse)
@limiter.limit("120/minute")
def bump_kitchen_order(request: Request, kitchen_order_id: int, kitchen: Kitchen):
    """Advance a ticket to its next status."""
    return kitchen.bump(kitchen_order_id)


@router.patch("/items/{item_id}/status", response_model=KitchenItemResponse)
@limiter.limit("120/minute")
def update_item_status(request: Request, item_id: int, data: ItemStatusUpdate, kitchen: Kitchen):
    """Update one item; the parent ticket is re-derived from its items."""
    return kitchen.update_item_status(item_id, data.status)


@router.get("/metrics", response_model=KitchenMetricsResponse)
def kitchen_metrics(
    kitchen: Kitchen,
    station_id: Optional[int] = None,
    location_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
):
    return kitchen.metrics(start=start, end=end, station_id=station_id, location_id=location_id)
