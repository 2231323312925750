"""Payment routes - methods, processing, refunds and transaction history."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from rms.core.rate_limit import limiter
from rms.core.responses import list_response, paginated_response
from rms.db.session import DbSession
from rms.schemas.payment import (
    PaymentCreate,
    PaymentMethodCreate,
    PaymentMethodResponse,
    RefundCreate,
    TransactionResponse,
)
from rms.services.payment_service import PaymentService

router = APIRouter()


def get_payment_service(db: DbSession) -> PaymentService:
    return PaymentService(db)


Payments = Annotated[PaymentService, Depends(get_payment_service)]


@router.get("/methods")
def list_payment_methods(payments: Payments, active_only: bool = True):
    methods = [PaymentMethodResponse.model_validate(m) for m in payments.list_methods(active_only)]
    return list_response(methods)


@router.post(
    "/methods",
    response_model=PaymentMethodResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_payment_method(data: PaymentMethodCreate, payments: Payments):
    return payments.create_method(**data.model_dump(mode="python"))


@router.get("/")
def list_transactions(
    payments: Payments,
    order_id: Optional[int] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
):
    skip = (page - 1) * limit
    items, total = payments.list_transactions(order_id, status_filter, skip=skip, limit=limit)
    return paginated_response(
        [TransactionResponse.model_validate(t) for t in items],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.post("/", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def process_payment(request: Request, data: PaymentCreate, payments: Payments):
    """Charge an order through the payment method's gateway."""
    return payments.process_payment(**data.model_dump())


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(transaction_id: int, payments: Payments):
    return payments.get_transaction(transaction_id)


@router.post("/{transaction_id}/refund", response_model=TransactionResponse)
@limiter.limit("10/minute")
def refund_transaction(request: Request, transaction_id: int, data: RefundCreate, payments: Payments):
    return payments.process_refund(
        transaction_id,
        data.amount,
        reason=data.reason,
        refunded_by=data.refunded_by,
    )
