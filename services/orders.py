"""
Order lookup and creation.

An order is either a Booking or a Cart. Which one an invoice addresses is
decided once, from the slug prefix at creation time, and stored on the
Payment as an ``OrderRef`` so reconciliation never re-parses it.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import OrderNotFoundError
from models.booking import Booking
from models.cart import Cart, CartItem
from models.payment import OrderKind, Payment
from models.status import PaymentStatus
from schemas.order import BookingCreate, CartCreate

logger = logging.getLogger(__name__)

BOOKING_PREFIXES = ("E", "T")
CART_PREFIXES = ("C",)


@dataclass(frozen=True)
class BookingRef:
    id: int
    kind = OrderKind.BOOKING


@dataclass(frozen=True)
class CartRef:
    id: int
    kind = OrderKind.CART


OrderRef = Union[BookingRef, CartRef]
Order = Union[Booking, Cart]


def kind_from_invoice(invoice_number: str) -> OrderKind:
    prefix = (invoice_number or "")[:1].upper()
    if prefix in BOOKING_PREFIXES:
        return OrderKind.BOOKING
    if prefix in CART_PREFIXES:
        return OrderKind.CART
    raise OrderNotFoundError(f"Invoice {invoice_number!r} does not address a known order type")


def ref_for(order: Order) -> OrderRef:
    if isinstance(order, Booking):
        return BookingRef(order.id)
    return CartRef(order.id)


def ref_fields(ref: OrderRef) -> dict:
    """Payment columns that persist an OrderRef."""
    if isinstance(ref, BookingRef):
        return {"order_kind": OrderKind.BOOKING, "booking_id": ref.id, "cart_id": None}
    return {"order_kind": OrderKind.CART, "booking_id": None, "cart_id": ref.id}


class OrderResolver:
    def __init__(self, db: Session):
        self.db = db

    def resolve(self, invoice_number: str, payment: Optional[Payment] = None) -> OrderRef:
        if payment is not None and payment.order_kind is not None:
            if payment.order_kind == OrderKind.BOOKING and payment.booking_id is not None:
                return BookingRef(payment.booking_id)
            if payment.order_kind == OrderKind.CART and payment.cart_id is not None:
                return CartRef(payment.cart_id)

        model = Booking if kind_from_invoice(invoice_number) == OrderKind.BOOKING else Cart
        order_id = self.db.execute(select(model.id).where(model.slug == invoice_number)).scalar_one_or_none()
        if order_id is None:
            raise OrderNotFoundError(f"No order matches invoice {invoice_number}")
        return BookingRef(order_id) if model is Booking else CartRef(order_id)

    def load(self, ref: OrderRef, for_update: bool = False) -> Order:
        model = Booking if isinstance(ref, BookingRef) else Cart
        stmt = select(model).where(model.id == ref.id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        order = self.db.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(f"{model.__name__} {ref.id} no longer exists")
        return order

    def apply_status(self, invoice_number: str, status: PaymentStatus, payment: Optional[Payment] = None) -> Order:
        order = self.load(self.resolve(invoice_number, payment), for_update=True)
        order.status = status
        self.db.flush()
        return order


def _price(value) -> Decimal:
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return price if price.is_finite() else Decimal("0")


def create_booking(db: Session, user_id: str, data: BookingCreate) -> Booking:
    booking = Booking(
        user_id=user_id,
        kind=data.kind,
        item_id=data.item_id,
        booking_date=data.booking_date,
        amount=data.amount,
        status=PaymentStatus.PENDING,
    )
    db.add(booking)
    db.flush()
    booking.assign_slug()
    db.commit()
    db.refresh(booking)
    logger.info(f"Booking {booking.slug} created for {user_id}")
    return booking


def create_cart(db: Session, user_id: str, data: CartCreate) -> Cart:
    cart = Cart(user_id=user_id, status=PaymentStatus.PENDING)
    total = Decimal("0")
    for item in data.items:
        price = _price(item.price)
        total += price * item.quantity
        cart.items.append(
            CartItem(
                product_id=item.product_id,
                name=item.name,
                price=price,
                quantity=item.quantity,
                src=item.src,
            )
        )
    cart.total = total
    db.add(cart)
    db.flush()
    cart.assign_slug()
    db.commit()
    db.refresh(cart)
    logger.info(f"Cart {cart.slug} created for {user_id}")
    return cart
