import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, Numeric, Enum
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base
from models.payment import status_column
from models.status import PaymentStatus


class BookingKind(str, enum.Enum):
    EVENT = "event"
    TEE = "tee"
    CLASS = "class"
    TOURNAMENT = "tournament"


# Slug prefix per booking kind. Classes and tournaments settle like tee times.
SLUG_PREFIXES = {
    BookingKind.EVENT: "E",
    BookingKind.TEE: "T",
    BookingKind.CLASS: "T",
    BookingKind.TOURNAMENT: "T",
}


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    slug: Mapped[str | None] = mapped_column(String(64), unique=True, index=True, nullable=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    kind: Mapped[BookingKind] = mapped_column(
        Enum(BookingKind, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20)
    )
    item_id: Mapped[str] = mapped_column(String(64), index=True)
    booking_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    status: Mapped[PaymentStatus] = status_column()
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def assign_slug(self) -> str:
        self.slug = f"{SLUG_PREFIXES[self.kind]}-{self.id}"
        return self.slug
