"""
Payment processing and order reconciliation

Features:
- Payment methods with none / percentage / fixed / both fee policies
- Processing a payment through the method's gateway
- Full and partial refunds
- Split payments (one transaction per split)
- Order payment aggregate (UNPAID / PARTIAL / PAID / REFUNDED)

Failed attempts are kept as FAILED transactions for audit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rms.core.errors import (
    ConcurrentUpdate,
    ExceedsRefundable,
    GatewayFailure,
    InvalidRange,
    InvalidState,
    InvalidType,
    NotFound,
    OrderNotModifiable,
)
from rms.models import (
    REFUNDABLE_STATUSES,
    FeeType,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentMethodType,
    PaymentStatus,
    Transaction,
    TransactionStatus,
)
from rms.services.events import EventBus, EventType, event_bus
from rms.services.payment_gateways import (
    PaymentGateway,
    PaymentRequest,
    RefundRequest,
    generate_transaction_number,
    get_gateway,
)
from rms.services.timing import utc_now

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Attempts at writing a settled refund back after the gateway has answered
SETTLE_ATTEMPTS = 3

# Transactions whose money actually moved (refunds included)
SETTLED_STATUSES = (
    TransactionStatus.COMPLETED,
    TransactionStatus.PARTIALLY_REFUNDED,
    TransactionStatus.REFUNDED,
)


def money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_fee(
    fee_type: FeeType,
    amount: Decimal,
    fee_percentage: Optional[Decimal] = None,
    fee_fixed: Optional[Decimal] = None,
) -> Decimal:
    """Processing fee for ``amount``; ``fee_percentage`` is a fraction (0.025 = 2.5%)."""
    fee_type = FeeType(fee_type)
    percentage_fee = Decimal(amount) * Decimal(fee_percentage or 0)
    fixed_fee = Decimal(fee_fixed or 0)
    if fee_type == FeeType.PERCENTAGE:
        fee = percentage_fee
    elif fee_type == FeeType.FIXED:
        fee = fixed_fee
    elif fee_type == FeeType.BOTH:
        fee = percentage_fee + fixed_fee
    else:
        fee = Decimal("0")
    return money(fee)


@dataclass(frozen=True)
class PaymentAggregate:
    payment_status: PaymentStatus
    paid_amount: Decimal
    total_charged: Decimal
    total_refunded: Decimal


def aggregate_payments(
    order_total: Decimal,
    transactions: Iterable[Tuple[TransactionStatus, Decimal, Decimal]],
) -> PaymentAggregate:
    """Derive an order's payment status from ``(status, amount, refunded)`` rows.

    Only money that actually moved counts; FAILED and PROCESSING rows are
    ignored. Paid is the sum of amount minus refunds and never drops below
    zero.
    """
    total_paid = Decimal("0")
    total_charged = Decimal("0")
    total_refunded = Decimal("0")
    for status, amount, refunded in transactions:
        if TransactionStatus(status) not in SETTLED_STATUSES:
            continue
        amount = Decimal(amount)
        refunded = Decimal(refunded or 0)
        total_paid += amount - refunded
        total_charged += amount
        total_refunded += refunded

    total_paid = max(money(total_paid), Decimal("0.00"))
    order_total = Decimal(order_total)

    if total_paid >= order_total:
        status = PaymentStatus.PAID
    elif total_paid > 0:
        status = PaymentStatus.PARTIAL
    else:
        status = PaymentStatus.UNPAID

    if total_charged > 0 and total_refunded >= total_charged:
        status = PaymentStatus.REFUNDED

    return PaymentAggregate(
        payment_status=status,
        paid_amount=total_paid,
        total_charged=money(total_charged),
        total_refunded=money(total_refunded),
    )


class PaymentService:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utc_now,
        bus: EventBus = event_bus,
        gateway_resolver: Callable[[Optional[str]], PaymentGateway] = get_gateway,
    ):
        self.db = db
        self.clock = clock
        self.bus = bus
        self.gateway_resolver = gateway_resolver

    # ------------------------------------------------------------------
    # Payment methods
    # ------------------------------------------------------------------

    def list_methods(self, active_only: bool = True) -> List[PaymentMethod]:
        stmt = select(PaymentMethod).order_by(PaymentMethod.display_order, PaymentMethod.id)
        if active_only:
            stmt = stmt.where(PaymentMethod.is_active.is_(True))
        return list(self.db.scalars(stmt).all())

    def create_method(
        self,
        name: str,
        code: str,
        type: str,
        gateway_provider: Optional[str] = None,
        is_active: bool = True,
        allows_refund: bool = True,
        allows_tip: bool = False,
        fee_type: str = FeeType.NONE.value,
        fee_percentage: Optional[Decimal] = None,
        fee_fixed: Optional[Decimal] = None,
        display_order: int = 0,
    ) -> PaymentMethod:
        try:
            method_type = PaymentMethodType(type)
            method_fee_type = FeeType(fee_type)
        except ValueError as e:
            raise InvalidType(str(e)) from None

        code = code.strip().upper()
        if self.db.scalar(select(PaymentMethod.id).where(PaymentMethod.code == code)) is not None:
            raise InvalidState("Payment method code already exists", {"code": code})

        method = PaymentMethod(
            name=name,
            code=code,
            type=method_type,
            gateway_provider=gateway_provider.lower() if gateway_provider else None,
            is_active=is_active,
            allows_refund=allows_refund,
            allows_tip=allows_tip,
            fee_type=method_fee_type,
            fee_percentage=fee_percentage,
            fee_fixed=fee_fixed,
            display_order=display_order,
        )
        try:
            self.db.add(method)
            self.db.commit()
            self.db.refresh(method)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create payment method {code}: {e}")
            raise
        logger.info(f"Created payment method {code} ({method_fee_type.value} fee)")
        return method

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: int) -> Transaction:
        transaction = self.db.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFound("Transaction", transaction_id)
        return transaction

    def list_transactions(
        self,
        order_id: Optional[int] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Transaction], int]:
        stmt = select(Transaction)
        count_stmt = select(func.count(Transaction.id))
        if order_id is not None:
            stmt = stmt.where(Transaction.order_id == order_id)
            count_stmt = count_stmt.where(Transaction.order_id == order_id)
        if status is not None:
            try:
                wanted = TransactionStatus(status)
            except ValueError:
                raise InvalidType(f"Unknown transaction status: {status}") from None
            stmt = stmt.where(Transaction.status == wanted)
            count_stmt = count_stmt.where(Transaction.status == wanted)

        total = self.db.scalar(count_stmt) or 0
        items = self.db.scalars(
            stmt.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset(skip)
            .limit(limit)
        ).all()
        return list(items), int(total)

    # ------------------------------------------------------------------
    # Process payment
    # ------------------------------------------------------------------

    def process_payment(
        self,
        order_id: int,
        payment_method_id: int,
        amount: Decimal,
        tip_amount: Decimal = Decimal("0"),
        is_split_payment: bool = False,
        split_index: Optional[int] = None,
        customer_email: Optional[str] = None,
        customer_phone: Optional[str] = None,
        payment_token: Optional[str] = None,
    ) -> Transaction:
        """Charge ``amount`` against an order through the method's gateway.

        Raises:
            GatewayFailure: the gateway declined or is unknown. The FAILED
                transaction is committed before the error propagates.
        """
        method = self.db.get(PaymentMethod, payment_method_id)
        if method is None:
            raise NotFound("PaymentMethod", payment_method_id)
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFound("Order", order_id)

        amount = money(amount)
        tip_amount = money(tip_amount or 0)
        if amount <= 0:
            raise InvalidRange("Payment amount must be positive", {"amount": str(amount)})
        if tip_amount < 0:
            raise InvalidRange("Tip amount cannot be negative", {"tip_amount": str(tip_amount)})
        if not method.is_active:
            raise InvalidState("Payment method is not active", {"payment_method_id": method.id})
        if tip_amount > 0 and not method.allows_tip:
            raise InvalidState("Payment method does not accept tips", {"payment_method_id": method.id})
        if order.status == OrderStatus.CANCELLED:
            raise OrderNotModifiable(
                "Cannot take payment for a cancelled order",
                {"current_status": order.status.value},
            )
        if is_split_payment and (split_index is None or split_index < 1):
            raise InvalidRange("split_index must be 1 or greater for split payments")

        fee_amount = compute_fee(method.fee_type, amount, method.fee_percentage, method.fee_fixed)
        provider = method.gateway_provider or "cash"

        transaction = Transaction(
            transaction_number=generate_transaction_number(self.clock()),
            order_id=order.id,
            payment_method_id=method.id,
            amount=amount,
            tip_amount=tip_amount,
            fee_amount=fee_amount,
            net_amount=amount - fee_amount,
            refunded_amount=Decimal("0"),
            status=TransactionStatus.PROCESSING,
            is_split_payment=is_split_payment,
            split_index=split_index if is_split_payment else None,
        )
        try:
            self.db.add(transaction)
            self.db.commit()
            self.db.refresh(transaction)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create transaction for order {order_id}: {e}")
            raise

        request = PaymentRequest(
            amount=amount,
            order_id=order.id,
            payment_method_id=method.id,
            customer_email=customer_email,
            customer_phone=customer_phone,
            payment_token=payment_token,
            metadata={"transaction_number": transaction.transaction_number},
        )
        try:
            gateway = self.gateway_resolver(provider)
            result = gateway.process_payment(request)
        except Exception as exc:
            self._mark_failed(transaction, str(exc) or exc.__class__.__name__, None)
            raise

        if not result.success:
            self._mark_failed(transaction, result.error, result.gateway_response)
            raise GatewayFailure(provider, result.error or "Payment failed")

        self._complete(transaction, result.gateway_ref, result.gateway_response)
        logger.info(
            f"Payment {transaction.transaction_number} completed: {amount} on order "
            f"{order_id} via {provider}"
        )
        self.bus.emit(
            EventType.PAYMENT_COMPLETED,
            transaction_id=transaction.id,
            transaction_number=transaction.transaction_number,
            order_id=order_id,
            amount=str(amount),
            payment_status=transaction.order.payment_status.value,
        )
        return transaction

    def _mark_failed(
        self,
        transaction: Transaction,
        reason: Optional[str],
        gateway_response: Optional[Dict[str, Any]],
    ) -> None:
        try:
            transaction.status = TransactionStatus.FAILED
            transaction.failure_reason = (reason or "Payment failed")[:500]
            transaction.gateway_response = gateway_response
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to record failure for transaction {transaction.id}: {e}")
            raise
        logger.warning(f"Payment {transaction.transaction_number} failed: {reason}")
        self.bus.emit(
            EventType.PAYMENT_FAILED,
            transaction_id=transaction.id,
            order_id=transaction.order_id,
            reason=transaction.failure_reason,
        )

    def _complete(
        self,
        transaction: Transaction,
        gateway_ref: Optional[str],
        gateway_response: Optional[Dict[str, Any]],
    ) -> None:
        """Mark the transaction COMPLETED and recompute the order in one commit.

        The gateway has already taken the money, so a lost race on the order
        row is retried once against the fresh state instead of surfacing.
        """
        for attempt in (1, 2):
            try:
                transaction.status = TransactionStatus.COMPLETED
                transaction.gateway_ref = gateway_ref
                transaction.gateway_response = gateway_response
                transaction.processed_at = self.clock()
                self.recompute_order(transaction.order_id)
                self.db.commit()
                return
            except StaleDataError:
                self.db.rollback()
                if attempt == 2:
                    raise
                logger.warning(
                    f"Order {transaction.order_id} changed concurrently; retrying aggregate"
                )
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to complete transaction {transaction.id}: {e}")
                raise

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def process_refund(
        self,
        transaction_id: int,
        amount: Decimal,
        reason: Optional[str] = None,
        refunded_by: Optional[str] = None,
    ) -> Transaction:
        """Refund part or all of a settled transaction.

        The amount is reserved on the row and committed before the gateway is
        called, so a second refund racing this one sees the reservation and is
        capped against it. A refused refund releases the reservation.
        """
        transaction = self._lock_transaction(transaction_id)
        if transaction.status not in REFUNDABLE_STATUSES:
            raise InvalidState(
                f"Can only refund completed transactions (status: {transaction.status.value})",
                {"current_status": transaction.status.value},
            )
        if not transaction.payment_method.allows_refund:
            raise InvalidState(
                "Payment method does not allow refunds",
                {"payment_method_id": transaction.payment_method_id},
            )

        amount = money(amount)
        if amount <= 0:
            raise InvalidRange("Refund amount must be positive", {"amount": str(amount)})
        refundable = money(transaction.refundable_amount)
        if amount > refundable:
            raise ExceedsRefundable(
                f"Maximum refundable amount is {refundable}",
                {"max_refundable": str(refundable), "requested": str(amount)},
            )

        provider = transaction.payment_method.gateway_provider or "cash"
        gateway = self.gateway_resolver(provider)
        request = RefundRequest(
            transaction_id=transaction.id,
            amount=amount,
            reason=reason,
            gateway_ref=transaction.gateway_ref,
        )

        try:
            transaction.pending_refund_amount = money(transaction.pending_refund_amount) + amount
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise ConcurrentUpdate(
                "Transaction changed while reserving the refund; retry with fresh data",
                {"transaction_id": transaction_id},
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to reserve refund on transaction {transaction_id}: {e}")
            raise

        try:
            result = gateway.process_refund(request)
        except Exception:
            self._settle_refund(transaction_id, amount)
            raise
        if not result.success:
            self._settle_refund(transaction_id, amount)
            logger.warning(
                f"Refund of {amount} on {transaction.transaction_number} rejected: {result.error}"
            )
            raise GatewayFailure(provider, result.error or "Refund failed")

        transaction = self._settle_refund(
            transaction_id, amount, refunded=True, reason=reason, refunded_by=refunded_by
        )
        logger.info(
            f"Refunded {amount} on {transaction.transaction_number} "
            f"({transaction.status.value})"
        )
        self.bus.emit(
            EventType.PAYMENT_REFUNDED,
            transaction_id=transaction.id,
            order_id=transaction.order_id,
            amount=str(amount),
            status=transaction.status.value,
        )
        return transaction

    def _lock_transaction(self, transaction_id: int) -> Transaction:
        """Fresh read of the row, locked where the database supports it."""
        transaction = self.db.execute(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if transaction is None:
            raise NotFound("Transaction", transaction_id)
        return transaction

    def _settle_refund(
        self,
        transaction_id: int,
        amount: Decimal,
        refunded: bool = False,
        reason: Optional[str] = None,
        refunded_by: Optional[str] = None,
    ) -> Transaction:
        """Release a reservation, recording it as refunded when the gateway paid out."""
        for attempt in range(1, SETTLE_ATTEMPTS + 1):
            try:
                transaction = self._lock_transaction(transaction_id)
                transaction.pending_refund_amount = money(transaction.pending_refund_amount) - amount
                if refunded:
                    transaction.refunded_amount = money(transaction.refunded_amount) + amount
                    transaction.refund_reason = reason
                    transaction.refunded_by = refunded_by
                    transaction.refunded_at = self.clock()
                    if transaction.refunded_amount >= money(transaction.amount):
                        transaction.status = TransactionStatus.REFUNDED
                    else:
                        transaction.status = TransactionStatus.PARTIALLY_REFUNDED
                    self.recompute_order(transaction.order_id)
                self.db.commit()
                return transaction
            except StaleDataError:
                self.db.rollback()
                if attempt == SETTLE_ATTEMPTS:
                    logger.error(
                        f"Could not settle refund of {amount} on transaction {transaction_id}; "
                        f"reservation left pending"
                    )
                    raise
                logger.warning(f"Transaction {transaction_id} changed concurrently; retrying settle")
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to record refund on transaction {transaction_id}: {e}")
                raise

    # ------------------------------------------------------------------
    # Order aggregate
    # ------------------------------------------------------------------

    def recompute_order(self, order_id: int) -> PaymentAggregate:
        """Write ``payment_status`` and ``paid_amount`` on the order.

        Runs inside the caller's transaction; does not commit.
        """
        self.db.flush()
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFound("Order", order_id)
        rows = self.db.execute(
            select(Transaction.status, Transaction.amount, Transaction.refunded_amount).where(
                Transaction.order_id == order_id
            )
        ).all()
        aggregate = aggregate_payments(order.total, rows)
        order.payment_status = aggregate.payment_status
        order.paid_amount = aggregate.paid_amount
        return aggregate
