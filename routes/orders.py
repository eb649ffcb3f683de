from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.db import get_db
from core.errors import NotFoundError
from models.booking import Booking
from models.cart import Cart
from schemas.order import BookingCreate, BookingOut, CartCreate, CartOut
from security.identity import get_current_user_id
from services.orders import create_booking, create_cart

router = APIRouter(tags=["orders"])


@router.post("/bookings", response_model=BookingOut, status_code=201)
def book(data: BookingCreate, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return create_booking(db, user_id, data)


@router.get("/bookings/{slug}", response_model=BookingOut)
def get_booking(slug: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    booking = db.query(Booking).filter(Booking.slug == slug, Booking.user_id == user_id).one_or_none()
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


@router.post("/carts", response_model=CartOut, status_code=201)
def add_cart(data: CartCreate, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return create_cart(db, user_id, data)


@router.get("/carts/{slug}", response_model=CartOut)
def get_cart(slug: str, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    cart = db.query(Cart).filter(Cart.slug == slug, Cart.user_id == user_id).one_or_none()
    if not cart:
        raise NotFoundError("Cart not found")
    return cart
