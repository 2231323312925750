"""Database models."""

from rms.models.location import Location, Area
from rms.models.table import Table, TableStatus
from rms.models.menu import Category, MenuItem
from rms.models.order import Order, OrderItem, OrderStatus, OrderType, PaymentStatus, DiscountType
from rms.models.kitchen import (
    KitchenStation,
    KitchenOrder,
    KitchenOrderItem,
    KitchenOrderStatus,
    KitchenItemStatus,
)
from rms.models.waitlist import (
    WaitlistEntry,
    WaitlistStatus,
    NotificationMethod,
    ACTIVE_WAITLIST_STATUSES,
)
from rms.models.payment import (
    PaymentMethod,
    PaymentMethodType,
    FeeType,
    Transaction,
    TransactionStatus,
    REFUNDABLE_STATUSES,
)

__all__ = [
    "Location",
    "Area",
    "Table",
    "TableStatus",
    "Category",
    "MenuItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderType",
    "PaymentStatus",
    "DiscountType",
    "KitchenStation",
    "KitchenOrder",
    "KitchenOrderItem",
    "KitchenOrderStatus",
    "KitchenItemStatus",
    "WaitlistEntry",
    "WaitlistStatus",
    "NotificationMethod",
    "ACTIVE_WAITLIST_STATUSES",
    "PaymentMethod",
    "PaymentMethodType",
    "FeeType",
    "Transaction",
    "TransactionStatus",
    "REFUNDABLE_STATUSES",
]
