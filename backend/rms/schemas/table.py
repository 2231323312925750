"""Table and combination schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rms.models.table import TableStatus


class TableResponse(BaseModel):
    id: int
    area_id: int
    table_number: str
    min_seats: int
    max_seats: int
    status: TableStatus
    combinable_with: Optional[List[int]] = None

    model_config = ConfigDict(from_attributes=True)


class Capacity(BaseModel):
    min: int
    max: int


class TableWithCapacity(TableResponse):
    capacity: Capacity


class CombineRequest(BaseModel):
    table_ids: List[int]
    status: Optional[str] = None


class CombineResponse(BaseModel):
    message: str = "Tables combined successfully"
    primary_table: TableResponse
    combined_with: List[int]
    capacity: Capacity


class SeparateRequest(BaseModel):
    table_id: int


class SeparateResponse(BaseModel):
    message: str = "Tables separated successfully"
    tables: List[TableResponse]


class TableStatusUpdate(BaseModel):
    status: str = Field(min_length=1)
