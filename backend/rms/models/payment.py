"""Payment method and transaction models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from rms.db.base import Base, TimestampMixin
from rms.models.validators import fraction, non_negative, positive


class PaymentMethodType(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    DIGITAL_WALLET = "DIGITAL_WALLET"
    BANK_TRANSFER = "BANK_TRANSFER"
    ONLINE = "ONLINE"


class FeeType(str, Enum):
    NONE = "none"
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    BOTH = "both"


class TransactionStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    REFUNDED = "REFUNDED"


REFUNDABLE_STATUSES = (TransactionStatus.COMPLETED, TransactionStatus.PARTIALLY_REFUNDED)


class PaymentMethod(Base, TimestampMixin):
    """A tender the restaurant accepts, with its fee policy and gateway."""

    __tablename__ = "payment_methods"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    type: Mapped[PaymentMethodType] = mapped_column(SQLEnum(PaymentMethodType), nullable=False)
    gateway_provider: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    allows_refund: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    allows_tip: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    fee_type: Mapped[FeeType] = mapped_column(SQLEnum(FeeType), default=FeeType.NONE, nullable=False)
    fee_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 4), nullable=True)
    fee_fixed: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    @validates("fee_percentage")
    def _validate_fee_percentage(self, key, value):
        return fraction(key, value)

    @validates("fee_fixed")
    def _validate_fee_fixed(self, key, value):
        return non_negative(key, value)


class Transaction(Base):
    """One payment event against an order (a split payment is one row per split)."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    transaction_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payment_method_id: Mapped[int] = mapped_column(
        ForeignKey("payment_methods.id"), nullable=False, index=True
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tip_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    refunded_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )
    # Refunds sent to the gateway but not yet recorded
    pending_refund_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0"), nullable=False
    )

    status: Mapped[TransactionStatus] = mapped_column(
        SQLEnum(TransactionStatus), default=TransactionStatus.PROCESSING, nullable=False, index=True
    )
    is_split_payment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    split_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    gateway_ref: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    gateway_response: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refund_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    refunded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    order: Mapped["Order"] = relationship("Order", back_populates="transactions")
    payment_method: Mapped["PaymentMethod"] = relationship("PaymentMethod")

    @validates("amount")
    def _validate_amount(self, key, value):
        return positive(key, value)

    @validates("tip_amount", "fee_amount", "refunded_amount", "pending_refund_amount")
    def _validate_non_negative(self, key, value):
        return non_negative(key, value)

    @property
    def refundable_amount(self) -> Decimal:
        return (
            Decimal(self.amount)
            - Decimal(self.refunded_amount or 0)
            - Decimal(self.pending_refund_amount or 0)
        )
