import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base
from models.status import PaymentStatus


class OrderKind(str, enum.Enum):
    BOOKING = "booking"
    CART = "cart"


def status_column(default: PaymentStatus = PaymentStatus.PENDING):
    return mapped_column(
        Enum(PaymentStatus, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        default=default,
        index=True,
    )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    invoice_number: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[PaymentStatus] = status_column()
    checkout_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    merchant_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    result_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Order reference, fixed when the payment is opened
    order_kind: Mapped[OrderKind | None] = mapped_column(
        Enum(OrderKind, values_callable=lambda e: [m.value for m in e], native_enum=False, length=10),
        nullable=True,
    )
    booking_id: Mapped[int | None] = mapped_column(ForeignKey("bookings.id", ondelete="RESTRICT"), nullable=True, index=True)
    cart_id: Mapped[int | None] = mapped_column(ForeignKey("carts.id", ondelete="RESTRICT"), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    booking = relationship("Booking")
    cart = relationship("Cart")

    def __repr__(self) -> str:
        return f"<Payment {self.invoice_number} {self.status.value if self.status else None}>"
