"""Customer order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rms.models.order import OrderStatus, OrderType, PaymentStatus


class OrderLine(BaseModel):
    menu_item_id: int
    quantity: int = Field(default=1, ge=1)
    notes: Optional[str] = Field(default=None, max_length=500)


class OrderCreate(BaseModel):
    items: List[OrderLine] = Field(min_length=1)
    order_type: OrderType = OrderType.DINE_IN
    location_id: Optional[int] = None
    table_id: Optional[int] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: int
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: int
    order_number: str
    location_id: Optional[int] = None
    table_id: Optional[int] = None
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    status: OrderStatus
    order_type: OrderType
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_type: Optional[str] = None
    discount_amount: Decimal
    discount_code: Optional[str] = None
    discount_reason: Optional[str] = None
    service_charge: Decimal
    delivery_fee: Decimal
    total: Decimal
    payment_status: PaymentStatus
    paid_amount: Decimal
    notes: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class OrderStatusUpdate(BaseModel):
    status: str


class DiscountRequest(BaseModel):
    discount_type: str
    discount_value: Decimal
    discount_code: Optional[str] = Field(default=None, max_length=50)
    discount_reason: Optional[str] = Field(default=None, max_length=255)


class AppliedDiscount(BaseModel):
    type: str
    value: Decimal
    amount: Decimal
    code: Optional[str] = None


class DiscountResponse(BaseModel):
    order: OrderResponse
    discount: AppliedDiscount
    message: str


class SplitLine(BaseModel):
    # Positivity is checked by the service so the error carries its own code
    amount: Decimal
    label: Optional[str] = Field(default=None, max_length=100)


class SplitRequest(BaseModel):
    splits: List[SplitLine]


class SplitPayment(BaseModel):
    split_index: int
    label: str
    amount: Decimal
    order_id: int
    is_paid: bool = False


class SplitResponse(BaseModel):
    order_id: int
    order_number: str
    total: Decimal
    splits: List[SplitPayment]
    message: str = (
        "Order split calculated. Pay each split via /payments with "
        "is_split_payment=true and its split_index."
    )
