"""Payment gateway adapters - Cash, Stripe, JazzCash and Easypaisa.

Every adapter reports outcomes as a ``GatewayResult`` rather than raising,
so the payment service decides what a failure means for the transaction
record. Lookup is by the provider string stored on the payment method.
"""

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import httpx
import stripe

from rms.core.config import settings
from rms.core.errors import GatewayFailure

logger = logging.getLogger(__name__)


@dataclass
class PaymentRequest:
    amount: Decimal
    order_id: int
    payment_method_id: int
    currency: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_token: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class RefundRequest:
    transaction_id: int
    amount: Decimal
    reason: Optional[str] = None
    gateway_ref: Optional[str] = None


@dataclass
class GatewayResult:
    success: bool
    gateway_ref: Optional[str] = None
    gateway_response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to integer paisa/cents."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_transaction_number(now: Optional[datetime] = None) -> str:
    """TXN-YYYYMMDD-XXXXXX with a random upper-case alphanumeric suffix."""
    now = now or datetime.now(timezone.utc)
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(6))
    return f"TXN-{now:%Y%m%d}-{suffix}"


class PaymentGateway:
    """Interface every provider adapter implements."""

    provider = "base"

    def process_payment(self, request: PaymentRequest) -> GatewayResult:
        raise NotImplementedError

    def process_refund(self, request: RefundRequest) -> GatewayResult:
        raise NotImplementedError


class CashGateway(PaymentGateway):
    """Cash is settled at the till; always succeeds."""

    provider = "cash"

    def process_payment(self, request: PaymentRequest) -> GatewayResult:
        return GatewayResult(
            success=True,
            gateway_response={"method": "cash", "amount": str(request.amount)},
        )

    def process_refund(self, request: RefundRequest) -> GatewayResult:
        return GatewayResult(
            success=True,
            gateway_response={"method": "cash", "refunded": str(request.amount)},
        )


class StripeGateway(PaymentGateway):
    """Card payments through Stripe PaymentIntents."""

    provider = "stripe"

    def __init__(self, secret_key: Optional[str] = None, currency: Optional[str] = None):
        self._secret_key = secret_key or settings.stripe_secret_key
        self._currency = (currency or settings.stripe_currency or "pkr").lower()
        self._configured = bool(self._secret_key)
        if self._configured:
            stripe.api_key = self._secret_key
        else:
            logger.warning(
                "stripe_secret_key is empty -- Stripe gateway disabled. "
                "Set STRIPE_SECRET_KEY in environment."
            )

    @property
    def is_configured(self) -> bool:
        return self._configured

    def process_payment(self, request: PaymentRequest) -> GatewayResult:
        if not self._configured:
            return GatewayResult(success=False, error="Stripe is not configured")

        params: Dict[str, Any] = {
            "amount": to_minor_units(request.amount),
            "currency": (request.currency or self._currency).lower(),
            "payment_method_types": ["card"],
            "metadata": {"order_id": str(request.order_id), **request.metadata},
        }
        if request.customer_email:
            params["receipt_email"] = request.customer_email
        if request.payment_token:
            params["payment_method"] = request.payment_token
            params["confirm"] = True

        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as exc:
            logger.error("Stripe create_payment_intent error: %s", exc)
            return GatewayResult(
                success=False,
                error=str(exc.user_message or exc),
            )
        # Any status short of succeeded means no money has moved yet
        succeeded = intent.status == "succeeded"
        return GatewayResult(
            success=succeeded,
            gateway_ref=intent.id,
            gateway_response={
                "id": intent.id,
                "status": intent.status,
                "amount": intent.amount,
                "client_secret": intent.client_secret,
            },
            error=None if succeeded else f"Payment intent {intent.status}",
        )

    def process_refund(self, request: RefundRequest) -> GatewayResult:
        if not self._configured or not request.gateway_ref:
            return GatewayResult(
                success=False,
                error="Stripe is not configured or missing gateway ref",
            )
        try:
            refund = stripe.Refund.create(
                payment_intent=request.gateway_ref,
                amount=to_minor_units(request.amount),
                reason="requested_by_customer",
            )
        except stripe.StripeError as exc:
            logger.error("Stripe refund_payment error: %s", exc)
            return GatewayResult(success=False, error=str(exc.user_message or exc))
        return GatewayResult(
            success=refund.status == "succeeded",
            gateway_ref=refund.id,
            gateway_response={"id": refund.id, "status": refund.status},
            error=None if refund.status == "succeeded" else f"Refund {refund.status}",
        )


class _HttpWalletGateway(PaymentGateway):
    """Shared plumbing for the Pakistani mobile-wallet HTTP APIs."""

    name = "wallet"

    def __init__(self, client: Optional[httpx.Client] = None):
        self._client = client

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._client is not None:
            response = self._client.post(url, json=payload)
        else:
            response = httpx.post(url, json=payload, timeout=settings.gateway_timeout_seconds)
        response.raise_for_status()
        return response.json()

    def process_refund(self, request: RefundRequest) -> GatewayResult:
        # Wallet refunds are settled by the provider's back office
        return GatewayResult(
            success=False,
            error=f"{self.name} refunds require manual processing. Please contact support.",
        )


class JazzCashGateway(_HttpWalletGateway):
    provider = "jazzcash"
    name = "JazzCash"

    def process_payment(self, request: PaymentRequest) -> GatewayResult:
        if not (
            settings.jazzcash_merchant_id
            and settings.jazzcash_password
            and settings.jazzcash_integrity_hash
        ):
            return GatewayResult(success=False, error="JazzCash is not configured")

        txn_ref = f"JC{datetime.now(timezone.utc):%Y%m%d%H%M%S%f}"
        payload = {
            "pp_Amount": str(to_minor_units(request.amount)),
            "pp_BillReference": str(request.order_id),
            "pp_Description": f"Order {request.order_id}",
            "pp_Language": "EN",
            "pp_MerchantID": settings.jazzcash_merchant_id,
            "pp_Password": settings.jazzcash_password,
            "pp_TxnRefNo": txn_ref,
            "pp_TxnType": "MWALLET",
            "pp_MobileNumber": request.customer_phone or "",
            "ppmpf_1": str(request.order_id),
        }
        try:
            data = self._post(settings.jazzcash_api_url, payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("JazzCash request failed: %s", exc)
            return GatewayResult(success=False, error=str(exc) or "JazzCash request failed")

        if data.get("pp_ResponseCode") == "000":
            return GatewayResult(
                success=True,
                gateway_ref=data.get("pp_TxnRefNo") or txn_ref,
                gateway_response=data,
            )
        return GatewayResult(
            success=False,
            error=data.get("pp_ResponseMessage") or "JazzCash payment failed",
            gateway_response=data,
        )


class EasypaisaGateway(_HttpWalletGateway):
    provider = "easypaisa"
    name = "Easypaisa"

    def process_payment(self, request: PaymentRequest) -> GatewayResult:
        if not (settings.easypaisa_store_id and settings.easypaisa_hash_key):
            return GatewayResult(success=False, error="Easypaisa is not configured")

        payload = {
            "storeId": settings.easypaisa_store_id,
            "orderId": f"EP{datetime.now(timezone.utc):%Y%m%d%H%M%S%f}",
            "transactionAmount": f"{Decimal(request.amount):.2f}",
            "mobileAccountNo": request.customer_phone or "",
            "emailAddress": request.customer_email or "",
        }
        try:
            data = self._post(settings.easypaisa_api_url, payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Easypaisa request failed: %s", exc)
            return GatewayResult(success=False, error=str(exc) or "Easypaisa request failed")

        if data.get("responseCode") == "0000":
            return GatewayResult(
                success=True,
                gateway_ref=data.get("transactionId"),
                gateway_response=data,
            )
        return GatewayResult(
            success=False,
            error=data.get("responseDesc") or "Easypaisa payment failed",
            gateway_response=data,
        )


GATEWAY_CLASSES = {
    "cash": CashGateway,
    "stripe": StripeGateway,
    "jazzcash": JazzCashGateway,
    "easypaisa": EasypaisaGateway,
}

_instances: Dict[str, PaymentGateway] = {}


def get_gateway(provider: Optional[str]) -> PaymentGateway:
    """Return the adapter for ``provider`` (default ``cash``).

    Raises:
        GatewayFailure: no adapter exists for the provider.
    """
    key = (provider or "cash").lower()
    if key not in GATEWAY_CLASSES:
        raise GatewayFailure(key, f"Unknown payment gateway: {key}")
    if key not in _instances:
        _instances[key] = GATEWAY_CLASSES[key]()
    return _instances[key]
