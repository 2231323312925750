"""Order routes - checkout, status, discount and split plans."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from rms.core.rate_limit import limiter
from rms.db.session import DbSession
from rms.schemas.order import (
    DiscountRequest,
    DiscountResponse,
    OrderCreate,
    OrderResponse,
    OrderStatusUpdate,
    SplitRequest,
    SplitResponse,
)
from rms.services.order_service import OrderService

router = APIRouter()


def get_order_service(db: DbSession) -> OrderService:
    return OrderService(db)


Orders = Annotated[OrderService, Depends(get_order_service)]


@router.post("/", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_order(request: Request, data: OrderCreate, orders: Orders):
    """Open a PENDING order priced from the menu."""
    return orders.create_order(
        [line.model_dump() for line in data.items],
        order_type=data.order_type.value,
        location_id=data.location_id,
        table_id=data.table_id,
        customer_id=data.customer_id,
        customer_name=data.customer_name,
        notes=data.notes,
    )


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, orders: Orders):
    return orders.get_order(order_id)


@router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(order_id: int, data: OrderStatusUpdate, orders: Orders):
    return orders.update_status(order_id, data.status)


@router.post("/{order_id}/discount", response_model=DiscountResponse)
@limiter.limit("30/minute")
def apply_discount(request: Request, order_id: int, data: DiscountRequest, orders: Orders):
    result = orders.apply_discount(
        order_id,
        data.discount_type,
        data.discount_value,
        code=data.discount_code,
        reason=data.discount_reason,
    )
    result["message"] = f"Discount of {result['discount']['amount']:.2f} applied successfully"
    return result


@router.post("/{order_id}/split", response_model=SplitResponse)
def split_order(order_id: int, data: SplitRequest, orders: Orders):
    """Validate a split of the order total into separately paid parts."""
    splits = orders.split_plan(order_id, [s.model_dump() for s in data.splits])
    order = orders.get_order(order_id)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "total": order.total,
        "splits": splits,
    }
