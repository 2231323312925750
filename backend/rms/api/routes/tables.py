"""Table routes - listing, combination and status."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from rms.core.rate_limit import limiter
from rms.core.responses import list_response
from rms.db.session import DbSession
from rms.schemas.table import (
    CombineRequest,
    CombineResponse,
    SeparateRequest,
    SeparateResponse,
    TableResponse,
    TableStatusUpdate,
    TableWithCapacity,
)
from rms.services.table_service import TableService

router = APIRouter()


def get_table_service(db: DbSession) -> TableService:
    return TableService(db)


Tables = Annotated[TableService, Depends(get_table_service)]


@router.get("/")
def list_tables(
    tables: Tables,
    area_id: Optional[int] = None,
    location_id: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """Tables with the seat capacity of their combined group."""
    items = [
        TableWithCapacity(
            **TableResponse.model_validate(row["table"]).model_dump(),
            capacity=row["capacity"],
        )
        for row in tables.list_tables(area_id, location_id, status_filter)
    ]
    return list_response(items)


@router.post("/combine", response_model=CombineResponse)
@limiter.limit("30/minute")
def combine_tables(request: Request, data: CombineRequest, tables: Tables):
    """Combine tables; the first id becomes the primary table."""
    return tables.combine(data.table_ids, data.status)


@router.post("/separate", response_model=SeparateResponse)
@limiter.limit("30/minute")
def separate_tables(request: Request, data: SeparateRequest, tables: Tables):
    return {"tables": tables.separate(data.table_id)}


@router.patch("/{table_id}/status", response_model=TableResponse)
def update_table_status(table_id: int, data: TableStatusUpdate, tables: Tables):
    return tables.update_status(table_id, data.status)
