"""
Payment reconciliation.

Ties push initiation, webhook confirmation and active polling into one outcome
per invoice. Every status change writes the Payment and its Booking/Cart in a
single transaction. The webhook path and the polling path may race for the
same invoice; statuses only move forward (see ``models.status.can_transition``)
so whichever reaches a terminal status first wins and the other is a no-op.
"""
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from core.config import settings
from core.db import atomic
from core.errors import GatewayError, GatewayPendingError, InvalidTransitionError, NotFoundError
from models.payment import Payment
from models.status import PaymentStatus, can_transition, rank
from services.ledger import PaymentLedger
from services.mpesa import MpesaClient, PushRequest
from services.orders import OrderResolver, ref_fields, ref_for
from services.status_codes import mpesa_status

logger = logging.getLogger(__name__)


@dataclass
class GatewayResult:
    """A gateway verdict for one invoice, whichever path delivered it."""

    status: PaymentStatus
    result_code: str = ""
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    checkout_request_id: Optional[str] = None
    merchant_request_id: Optional[str] = None


def result_from_query(data: Dict[str, Any]) -> GatewayResult:
    """Normalize a status-query response."""
    if data.get("ResultCode") is None:
        raise GatewayPendingError(data.get("errorMessage") or data.get("ResponseDescription") or "Result not available yet")
    return GatewayResult(
        status=mpesa_status(data["ResultCode"]),
        result_code=str(data["ResultCode"]),
        description=data.get("ResultDesc"),
        checkout_request_id=data.get("CheckoutRequestID"),
        merchant_request_id=data.get("MerchantRequestID"),
    )


class ReconciliationEngine:
    def __init__(
        self,
        db: Session,
        gateway: MpesaClient,
        sleep: Callable[[float], None] = time.sleep,
        poll_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        backoff_max: Optional[float] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.sleep = sleep
        self.poll_delay = settings.PAYMENT_POLL_DELAY_SECONDS if poll_delay is None else poll_delay
        self.max_attempts = settings.PAYMENT_POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.backoff = settings.PAYMENT_POLL_BACKOFF_SECONDS if backoff is None else backoff
        self.backoff_max = settings.PAYMENT_POLL_BACKOFF_MAX_SECONDS if backoff_max is None else backoff_max
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.ledger = PaymentLedger(db)
        self.orders = OrderResolver(db)

    def backoff_delay(self, attempt: int) -> float:
        return min(self.backoff * (2 ** (attempt - 1)), self.backoff_max)

    def initiate(self, request: PushRequest, user_id: Optional[str] = None) -> PaymentStatus:
        """Send a push request, record the pending payment, wait, then poll once through."""
        invoice = request.invoice_number
        existing = self.ledger.find_by_invoice(invoice)
        # Settled or refunded invoices never get a second push
        if existing is not None and rank(existing.status) >= rank(PaymentStatus.COMPLETED):
            raise InvalidTransitionError(f"Payment {invoice} is already {existing.status.value}")
        ref = self.orders.resolve(invoice, existing)

        pushed = self.gateway.initiate_push(request)

        fields = dict(
            amount=request.amount,
            checkout_request_id=pushed.checkout_request_id,
            merchant_request_id=pushed.merchant_request_id,
            phone_number=request.phone_number,
            **ref_fields(ref),
        )
        if user_id:
            fields["user_id"] = user_id
        if existing is None:
            fields["status"] = PaymentStatus.PENDING
        with atomic(self.db):
            self.ledger.upsert_by_invoice(invoice, **fields)
        logger.info(f"Payment {invoice} pending on {pushed.checkout_request_id}; polling in {self.poll_delay}s")

        self.sleep(self.poll_delay)
        return self.poll(invoice)

    def poll(self, invoice_number: str) -> PaymentStatus:
        """Query the gateway until it gives a verdict or attempts run out.

        Raises the last ``GatewayError`` after the final attempt and leaves the
        Payment and Order untouched.
        """
        payment = self.ledger.get_by_invoice(invoice_number)
        if not payment.checkout_request_id:
            raise NotFoundError(f"No push request recorded for {invoice_number}")
        checkout_id = payment.checkout_request_id

        last_error: Optional[GatewayError] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = result_from_query(self.gateway.query_status(checkout_id))
            except GatewayError as e:
                last_error = e
                if attempt < self.max_attempts:
                    delay = self.backoff_delay(attempt)
                    logger.warning(
                        f"Status query for {invoice_number} failed (attempt {attempt}/{self.max_attempts}): "
                        f"{e.message}; retrying in {delay}s"
                    )
                    self.sleep(delay)
                continue
            return self.apply_result(invoice_number, result).status

        logger.error(f"Giving up on {invoice_number} after {self.max_attempts} attempts: {last_error.message}")
        raise last_error

    def apply_result(self, invoice_number: str, result: GatewayResult) -> Payment:
        fields = {"result_description": result.description}
        if result.checkout_request_id:
            fields["checkout_request_id"] = result.checkout_request_id
        if result.merchant_request_id:
            fields["merchant_request_id"] = result.merchant_request_id
        if result.amount is not None and result.status == PaymentStatus.COMPLETED:
            fields["amount"] = result.amount
        return self._commit(invoice_number, result.status, fields, strict=False)

    def submit_code(self, invoice_number: str, payment_code: str) -> Payment:
        """Record a payer-supplied proof code; the payment goes to review."""
        return self._commit(invoice_number, PaymentStatus.IN_REVIEW, {"payment_code": payment_code}, strict=True)

    def _commit(self, invoice_number: str, status: PaymentStatus, fields: dict, strict: bool) -> Payment:
        with atomic(self.db):
            current = self.ledger.find_by_invoice(invoice_number, for_update=True)
            if current is not None and not can_transition(current.status, status):
                if strict:
                    raise InvalidTransitionError(
                        f"Payment {invoice_number} is {current.status.value}; cannot move to {status.value}"
                    )
                logger.info(f"Ignoring {status.value} for {invoice_number}: already {current.status.value}")
                return current

            payment = self.ledger.upsert_by_invoice(invoice_number, status=status, **fields)
            order = self.orders.apply_status(invoice_number, status, payment)
            self.ledger.upsert_by_invoice(invoice_number, **ref_fields(ref_for(order)))

        logger.info(f"Payment {invoice_number} reconciled to {status.value}")
        return payment
