from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import NotFoundError
from models.payment import Payment

WRITABLE_FIELDS = frozenset({
    "status",
    "amount",
    "result_description",
    "checkout_request_id",
    "merchant_request_id",
    "payment_code",
    "phone_number",
    "user_id",
    "order_kind",
    "booking_id",
    "cart_id",
})


class PaymentLedger:
    """Sole writer of Payment rows. Writes are flushed, never committed here;
    the caller owns the transaction so the Order update lands in the same unit.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_invoice(self, invoice_number: str, for_update: bool = False) -> Optional[Payment]:
        stmt = select(Payment).where(Payment.invoice_number == invoice_number)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_invoice(self, invoice_number: str) -> Payment:
        payment = self.find_by_invoice(invoice_number)
        if payment is None:
            raise NotFoundError(f"Payment {invoice_number} not found")
        return payment

    def upsert_by_invoice(self, invoice_number: str, **fields) -> Payment:
        unknown = set(fields) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot write payment fields: {sorted(unknown)}")
        payment = self.find_by_invoice(invoice_number, for_update=True)
        if payment is None:
            payment = Payment(invoice_number=invoice_number)
            self.db.add(payment)
        for name, value in fields.items():
            setattr(payment, name, value)
        self.db.flush()
        return payment
