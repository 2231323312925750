"""Kitchen display schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from rms.models.kitchen import KitchenItemStatus, KitchenOrderStatus


class StationCreate(BaseModel):
    """Kitchen station creation schema."""

    location_id: int
    name: str = Field(min_length=1, max_length=100)
    code: str = Field(min_length=1, max_length=30)
    color: Optional[str] = Field(default=None, max_length=20)
    warning_time: Optional[int] = Field(default=None, ge=0)
    critical_time: Optional[int] = Field(default=None, ge=0)
    display_order: int = 0

    @model_validator(mode="after")
    def check_thresholds(self):
        if (
            self.warning_time is not None
            and self.critical_time is not None
            and self.critical_time < self.warning_time
        ):
            raise ValueError("critical_time must not be less than warning_time")
        return self


class StationResponse(BaseModel):
    id: int
    location_id: int
    name: str
    code: str
    color: Optional[str] = None
    warning_time: int
    critical_time: int
    is_active: bool
    display_order: int

    model_config = ConfigDict(from_attributes=True)


class StationWithLoad(StationResponse):
    open_tickets: int = 0


class KitchenItemResponse(BaseModel):
    id: int
    kitchen_order_id: int
    menu_item_id: int
    quantity: int
    notes: Optional[str] = None
    status: KitchenItemStatus
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class KitchenOrderResponse(BaseModel):
    id: int
    ticket_number: str
    order_id: int
    station_id: int
    status: KitchenOrderStatus
    priority: int
    notes: Optional[str] = None
    received_at: datetime
    viewed_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    served_at: Optional[datetime] = None
    wait_time: Optional[int] = None
    prep_time: Optional[int] = None
    items: List[KitchenItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class TicketTimingResponse(BaseModel):
    elapsed_seconds: int
    elapsed_minutes: int
    is_warning: bool
    is_critical: bool


class BoardTicket(KitchenOrderResponse):
    timing: TicketTimingResponse


class ItemStatusUpdate(BaseModel):
    # Plain string so unknown values reach the service as InvalidStatus
    status: str


class RouteLine(BaseModel):
    station_id: int
    menu_item_id: int
    quantity: int = Field(default=1, gt=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class RouteOrderRequest(BaseModel):
    order_id: int
    lines: List[RouteLine]
    priority: int = 0


class StationMetrics(BaseModel):
    station_id: int
    station_name: str
    orders_completed: int
    avg_prep_time_seconds: int
    avg_wait_time_seconds: int


class MetricsSummary(BaseModel):
    total_orders_completed: int
    pending_orders: int
    orders_per_hour: float
    avg_prep_time_seconds: int
    avg_prep_time_minutes: float
    avg_wait_time_seconds: int
    avg_wait_time_minutes: float


class MetricsPeriod(BaseModel):
    start: datetime
    end: datetime


class KitchenMetricsResponse(BaseModel):
    period: MetricsPeriod
    summary: MetricsSummary
    status_breakdown: Dict[str, int]
    by_station: List[StationMetrics]
