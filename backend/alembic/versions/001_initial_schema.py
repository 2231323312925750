"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLE_STATUS = sa.Enum("AVAILABLE", "OCCUPIED", "RESERVED", "CLEANING", "BLOCKED", name="tablestatus")
ORDER_STATUS = sa.Enum(
    "PENDING", "CONFIRMED", "PREPARING", "READY", "SERVED", "COMPLETED", "CANCELLED",
    name="orderstatus",
)
ORDER_TYPE = sa.Enum("DINE_IN", "TAKEAWAY", "DELIVERY", "DRIVE_THRU", name="ordertype")
PAYMENT_STATUS = sa.Enum("UNPAID", "PARTIAL", "PAID", "REFUNDED", name="paymentstatus")
KITCHEN_ORDER_STATUS = sa.Enum(
    "NEW", "VIEWED", "IN_PROGRESS", "READY", "SERVED", name="kitchenorderstatus"
)
KITCHEN_ITEM_STATUS = sa.Enum("PENDING", "PREPARING", "READY", "CANCELLED", name="kitchenitemstatus")
WAITLIST_STATUS = sa.Enum("WAITING", "NOTIFIED", "SEATED", "CANCELLED", name="waitliststatus")
NOTIFICATION_METHOD = sa.Enum("SMS", "WHATSAPP", "APP", name="notificationmethod")
PAYMENT_METHOD_TYPE = sa.Enum(
    "CASH", "CARD", "DIGITAL_WALLET", "BANK_TRANSFER", "ONLINE", name="paymentmethodtype"
)
FEE_TYPE = sa.Enum("NONE", "PERCENTAGE", "FIXED", "BOTH", name="feetype")
TRANSACTION_STATUS = sa.Enum(
    "PROCESSING", "COMPLETED", "FAILED", "PARTIALLY_REFUNDED", "REFUNDED",
    name="transactionstatus",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Locations and seating
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("waitlist_revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "areas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(500), nullable=True),
    )
    op.create_table(
        "tables",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("area_id", sa.Integer(), sa.ForeignKey("areas.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("table_number", sa.String(50), nullable=False),
        sa.Column("min_seats", sa.Integer(), nullable=False),
        sa.Column("max_seats", sa.Integer(), nullable=False),
        sa.Column("status", TABLE_STATUS, nullable=False),
        sa.Column("combinable_with", sa.JSON(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    # Menu
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "menu_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("kitchen_note", sa.String(500), nullable=True),
        sa.Column("available", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    # Orders
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(30), unique=True, nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("table_id", sa.Integer(), sa.ForeignKey("tables.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(200), nullable=True),
        sa.Column("status", ORDER_STATUS, nullable=False, index=True),
        sa.Column("order_type", ORDER_TYPE, nullable=False),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("tax_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("discount_type", sa.String(20), nullable=True),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("discount_code", sa.String(50), nullable=True),
        sa.Column("discount_reason", sa.String(255), nullable=True),
        sa.Column("service_charge", sa.Numeric(10, 2), nullable=False),
        sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("total", sa.Numeric(10, 2), nullable=False),
        sa.Column("payment_status", PAYMENT_STATUS, nullable=False),
        sa.Column("paid_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("menu_item_id", sa.Integer(), sa.ForeignKey("menu_items.id"), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("line_total", sa.Numeric(10, 2), nullable=False),
        sa.Column("notes", sa.String(500), nullable=True),
    )

    # Kitchen display
    op.create_table(
        "kitchen_stations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(30), unique=True, nullable=False),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("warning_time", sa.Integer(), nullable=False),
        sa.Column("critical_time", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "kitchen_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_number", sa.String(30), nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("station_id", sa.Integer(), sa.ForeignKey("kitchen_stations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("status", KITCHEN_ORDER_STATUS, nullable=False, index=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("served_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("wait_time", sa.Integer(), nullable=True),
        sa.Column("prep_time", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_table(
        "kitchen_order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kitchen_order_id", sa.Integer(), sa.ForeignKey("kitchen_orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("menu_item_id", sa.Integer(), sa.ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("status", KITCHEN_ITEM_STATUS, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Waitlist
    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("guest_name", sa.String(200), nullable=False),
        sa.Column("guest_phone", sa.String(50), nullable=False),
        sa.Column("party_size", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("quoted_wait_time", sa.Integer(), nullable=False),
        sa.Column("seating_preference", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", WAITLIST_STATUS, nullable=False, index=True),
        sa.Column("notification_method", NOTIFICATION_METHOD, nullable=True),
        sa.Column("table_id", sa.Integer(), sa.ForeignKey("tables.id", ondelete="SET NULL"), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("seated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("actual_wait_time", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
    )

    # Payments
    op.create_table(
        "payment_methods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(30), unique=True, nullable=False),
        sa.Column("type", PAYMENT_METHOD_TYPE, nullable=False),
        sa.Column("gateway_provider", sa.String(30), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("allows_refund", sa.Boolean(), nullable=False),
        sa.Column("allows_tip", sa.Boolean(), nullable=False),
        sa.Column("fee_type", FEE_TYPE, nullable=False),
        sa.Column("fee_percentage", sa.Numeric(6, 4), nullable=True),
        sa.Column("fee_fixed", sa.Numeric(10, 2), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("transaction_number", sa.String(30), unique=True, nullable=False),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("payment_method_id", sa.Integer(), sa.ForeignKey("payment_methods.id"), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("tip_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("fee_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("net_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("refunded_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("pending_refund_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", TRANSACTION_STATUS, nullable=False, index=True),
        sa.Column("is_split_payment", sa.Boolean(), nullable=False),
        sa.Column("split_index", sa.Integer(), nullable=True),
        sa.Column("gateway_ref", sa.String(200), nullable=True),
        sa.Column("gateway_response", sa.JSON(), nullable=True),
        sa.Column("failure_reason", sa.String(500), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_reason", sa.String(500), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_by", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    for table in (
        "transactions",
        "payment_methods",
        "waitlist_entries",
        "kitchen_order_items",
        "kitchen_orders",
        "kitchen_stations",
        "order_items",
        "orders",
        "menu_items",
        "categories",
        "tables",
        "areas",
        "locations",
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for enum in (
        TRANSACTION_STATUS, FEE_TYPE, PAYMENT_METHOD_TYPE, NOTIFICATION_METHOD,
        WAITLIST_STATUS, KITCHEN_ITEM_STATUS, KITCHEN_ORDER_STATUS, PAYMENT_STATUS,
        ORDER_TYPE, ORDER_STATUS, TABLE_STATUS,
    ):
        enum.drop(bind, checkfirst=True)
