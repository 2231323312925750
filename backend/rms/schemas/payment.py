"""Payment method and transaction schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from rms.models.payment import FeeType, PaymentMethodType, TransactionStatus


class PaymentMethodCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    code: str = Field(min_length=1, max_length=30)
    type: PaymentMethodType
    gateway_provider: Optional[str] = Field(default=None, max_length=30)
    is_active: bool = True
    allows_refund: bool = True
    allows_tip: bool = False
    fee_type: FeeType = FeeType.NONE
    fee_percentage: Optional[Decimal] = Field(default=None, ge=0, le=1)
    fee_fixed: Optional[Decimal] = Field(default=None, ge=0)
    display_order: int = 0


class PaymentMethodResponse(BaseModel):
    id: int
    name: str
    code: str
    type: PaymentMethodType
    gateway_provider: Optional[str] = None
    is_active: bool
    allows_refund: bool
    allows_tip: bool
    fee_type: FeeType
    fee_percentage: Optional[Decimal] = None
    fee_fixed: Optional[Decimal] = None
    display_order: int

    model_config = ConfigDict(from_attributes=True)


class PaymentCreate(BaseModel):
    order_id: int
    payment_method_id: int
    amount: Decimal
    tip_amount: Decimal = Decimal("0")
    is_split_payment: bool = False
    split_index: Optional[int] = None
    customer_email: Optional[str] = Field(default=None, max_length=255)
    customer_phone: Optional[str] = Field(default=None, max_length=50)
    # Card token (Stripe PaymentMethod id) confirmed together with the charge
    payment_token: Optional[str] = Field(default=None, max_length=255)


class RefundCreate(BaseModel):
    amount: Decimal
    reason: Optional[str] = Field(default=None, max_length=500)
    refunded_by: Optional[str] = Field(default=None, max_length=100)


class TransactionResponse(BaseModel):
    id: int
    transaction_number: str
    order_id: int
    payment_method_id: int
    amount: Decimal
    tip_amount: Decimal
    fee_amount: Decimal
    net_amount: Decimal
    refunded_amount: Decimal
    pending_refund_amount: Decimal
    status: TransactionStatus
    is_split_payment: bool
    split_index: Optional[int] = None
    gateway_ref: Optional[str] = None
    gateway_response: Optional[Dict[str, Any]] = None
    failure_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refunded_by: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
