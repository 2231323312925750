"""
Order lifecycle and discount service

Order totals always satisfy::

    total = (subtotal - discount_amount) * (1 + tax_rate) + service_charge + delivery_fee

with tax rounded to the cent on the discounted subtotal.
"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from rms.core.config import settings
from rms.core.errors import InvalidRange, InvalidState, InvalidType, NotFound, OrderNotModifiable
from rms.models import (
    DiscountType,
    Location,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    OrderType,
    Table,
)
from rms.services.events import EventBus, EventType, event_bus
from rms.services.status_transitions import TERMINAL_ORDER_STATUSES, validate_order_transition
from rms.services.timing import utc_now

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
SPLIT_TOLERANCE = Decimal("0.01")

# Timestamp stamped when an order enters each status
_STATUS_STAMPS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
}


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderTotals:
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal


def compute_totals(
    subtotal: Decimal,
    tax_rate: Decimal,
    discount_amount: Decimal = Decimal("0"),
    service_charge: Decimal = Decimal("0"),
    delivery_fee: Decimal = Decimal("0"),
) -> OrderTotals:
    """Recompute tax and total; the discount is capped at the subtotal."""
    subtotal = _money(subtotal)
    discount = min(_money(discount_amount), subtotal)
    taxable = subtotal - discount
    tax = _money(taxable * Decimal(str(tax_rate)))
    total = taxable + tax + _money(service_charge or 0) + _money(delivery_fee or 0)
    return OrderTotals(discount_amount=discount, tax_amount=tax, total=_money(total))


def generate_order_number(now: datetime) -> str:
    """ORD-YYYYMMDD-XXXXXX, the same shape as transaction numbers."""
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"ORD-{now:%Y%m%d}-{suffix}"


def discount_amount_for(discount_type: DiscountType, value: Decimal, subtotal: Decimal) -> Decimal:
    """Currency amount of a discount before capping."""
    value = Decimal(str(value))
    if discount_type == DiscountType.PERCENTAGE:
        if value < 0 or value > HUNDRED:
            raise InvalidRange(
                "Percentage discount must be between 0 and 100", {"value": str(value)}
            )
        return _money(Decimal(subtotal) * value / HUNDRED)
    if value < 0:
        raise InvalidRange("Discount value cannot be negative", {"value": str(value)})
    return _money(value)


class OrderService:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utc_now,
        bus: EventBus = event_bus,
    ):
        self.db = db
        self.clock = clock
        self.bus = bus

    def get_order(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    def create_order(
        self,
        items: Sequence[Dict[str, Any]],
        order_type: str = OrderType.DINE_IN.value,
        location_id: Optional[int] = None,
        table_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        customer_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Order:
        """Price a checkout from the menu and open it as a PENDING order.

        Each line is ``{"menu_item_id", "quantity", "notes"?}``. Prices come
        from the menu, never from the caller. Delivery orders carry the
        configured delivery fee and must reach the minimum order subtotal.
        """
        try:
            order_type = OrderType(order_type)
        except ValueError:
            allowed = ", ".join(t.value for t in OrderType)
            raise InvalidType(
                f"Order type must be one of: {allowed}", {"order_type": order_type}
            ) from None
        if not items:
            raise InvalidRange("Order must contain at least one item")

        wanted = {line["menu_item_id"] for line in items}
        menu = {
            item.id: item
            for item in self.db.scalars(select(MenuItem).where(MenuItem.id.in_(wanted))).all()
        }
        missing = sorted(wanted - menu.keys())
        if missing:
            raise NotFound("MenuItem", missing[0])
        unavailable = sorted(i for i in wanted if not menu[i].available)
        if unavailable:
            raise InvalidState(
                "Some items are not available", {"unavailable_item_ids": unavailable}
            )

        lines = []
        subtotal = Decimal("0")
        for line in items:
            quantity = int(line.get("quantity", 1))
            if quantity < 1:
                raise InvalidRange(
                    "Quantity must be at least 1",
                    {"menu_item_id": line["menu_item_id"], "quantity": quantity},
                )
            item = menu[line["menu_item_id"]]
            unit_price = _money(item.price)
            line_total = unit_price * quantity
            subtotal += line_total
            lines.append(
                OrderItem(
                    menu_item_id=item.id,
                    name=item.name,
                    quantity=quantity,
                    unit_price=unit_price,
                    line_total=line_total,
                    notes=line.get("notes"),
                )
            )

        delivery_fee = Decimal("0")
        if order_type == OrderType.DELIVERY:
            minimum = _money(settings.delivery_minimum_order)
            if subtotal < minimum:
                raise InvalidRange(
                    f"Minimum order amount is {minimum}",
                    {"minimum_order": str(minimum), "subtotal": str(subtotal)},
                )
            delivery_fee = _money(settings.delivery_fee)

        if location_id is not None and self.db.get(Location, location_id) is None:
            raise NotFound("Location", location_id)
        if table_id is not None and self.db.get(Table, table_id) is None:
            raise NotFound("Table", table_id)

        tax_rate = Decimal(str(settings.order_tax_rate))
        totals = compute_totals(subtotal, tax_rate, delivery_fee=delivery_fee)
        order = Order(
            order_number=generate_order_number(self.clock()),
            location_id=location_id,
            table_id=table_id,
            customer_id=customer_id,
            customer_name=customer_name,
            status=OrderStatus.PENDING,
            order_type=order_type,
            subtotal=subtotal,
            tax_rate=tax_rate,
            tax_amount=totals.tax_amount,
            discount_amount=totals.discount_amount,
            delivery_fee=delivery_fee,
            total=totals.total,
            notes=notes,
            items=lines,
        )
        try:
            self.db.add(order)
            self.db.commit()
            self.db.refresh(order)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create order: {e}")
            raise

        logger.info(
            f"Order {order.order_number} created: {len(lines)} lines, {order.order_type.value}, "
            f"total {order.total}"
        )
        self.bus.emit(
            EventType.ORDER_CREATED,
            order_id=order.id,
            order_number=order.order_number,
            order_type=order.order_type.value,
            total=str(order.total),
        )
        return order

    def update_status(self, order_id: int, status: str) -> Order:
        """Move an order along its state machine."""
        try:
            requested = OrderStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in OrderStatus)
            raise InvalidType(f"Status must be one of: {allowed}", {"status": status}) from None

        order = self.get_order(order_id)
        previous = order.status
        validate_order_transition(previous, requested)

        try:
            order.status = requested
            stamp = _STATUS_STAMPS.get(requested)
            if stamp:
                setattr(order, stamp, self.clock())
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update order {order_id} status: {e}")
            raise

        logger.info(f"Order {order.order_number}: {previous.value} -> {requested.value}")
        self.bus.emit(
            EventType.ORDER_STATUS_CHANGED,
            order_id=order.id,
            order_number=order.order_number,
            previous_status=previous.value,
            status=requested.value,
        )
        return order

    def apply_discount(
        self,
        order_id: int,
        discount_type: str,
        value: Decimal,
        code: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Apply (or replace) the order's discount and rewrite its totals."""
        try:
            kind = DiscountType(discount_type)
        except ValueError:
            allowed = ", ".join(t.value for t in DiscountType)
            raise InvalidType(
                f"discount_type must be one of: {allowed}", {"discount_type": discount_type}
            ) from None

        order = self.get_order(order_id)
        if order.status in TERMINAL_ORDER_STATUSES:
            raise OrderNotModifiable(
                "Cannot modify a completed or cancelled order",
                {"current_status": order.status.value},
            )

        requested = discount_amount_for(kind, value, order.subtotal)
        totals = compute_totals(
            subtotal=order.subtotal,
            tax_rate=order.tax_rate,
            discount_amount=requested,
            service_charge=order.service_charge,
            delivery_fee=order.delivery_fee,
        )

        try:
            order.discount_type = kind.value
            order.discount_amount = totals.discount_amount
            order.discount_code = code or None
            order.discount_reason = reason or None
            order.tax_amount = totals.tax_amount
            order.total = totals.total
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to apply discount to order {order_id}: {e}")
            raise

        logger.info(
            f"Discount of {totals.discount_amount} ({kind.value}) applied to order "
            f"{order.order_number}; total now {totals.total}"
        )
        self.bus.emit(
            EventType.ORDER_DISCOUNT_APPLIED,
            order_id=order.id,
            discount_type=kind.value,
            discount_amount=str(totals.discount_amount),
            total=str(totals.total),
        )
        return {
            "order": order,
            "discount": {
                "type": kind.value,
                "value": Decimal(str(value)),
                "amount": totals.discount_amount,
                "code": code,
            },
        }

    def split_plan(self, order_id: int, splits: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Validate a split of the order total; each split is paid separately."""
        if len(splits) < 2:
            raise InvalidRange("At least 2 splits are required")
        amounts = []
        for split in splits:
            amount = split.get("amount")
            if amount is None or Decimal(str(amount)) <= 0:
                raise InvalidRange("Each split must have a positive amount")
            amounts.append(_money(amount))

        order = self.get_order(order_id)
        split_total = sum(amounts, Decimal("0"))
        if abs(split_total - _money(order.total)) > SPLIT_TOLERANCE:
            raise InvalidRange(
                f"Split total ({split_total}) must equal order total ({_money(order.total)})",
                {"split_total": str(split_total), "order_total": str(_money(order.total))},
            )

        return [
            {
                "split_index": index,
                "label": split.get("label") or f"Payment {index}",
                "amount": amount,
                "order_id": order.id,
                "is_paid": False,
            }
            for index, (split, amount) in enumerate(zip(splits, amounts), start=1)
        ]
