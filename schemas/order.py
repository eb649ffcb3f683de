from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from models.booking import BookingKind
from models.status import PaymentStatus


class BookingCreate(BaseModel):
    kind: BookingKind
    item_id: str = Field(alias="itemId", min_length=1, max_length=64)
    booking_date: Optional[datetime] = Field(default=None, alias="bookingDate")
    amount: Decimal = Field(default=Decimal("0"), ge=0)

    class Config:
        populate_by_name = True


class BookingOut(BaseModel):
    id: int
    slug: str
    kind: BookingKind
    item_id: str = Field(serialization_alias="itemId")
    amount: float
    status: PaymentStatus

    class Config:
        from_attributes = True


class CartItemIn(BaseModel):
    product_id: int = Field(alias="productId")
    name: str
    price: Union[str, float]
    quantity: int = Field(ge=0)
    src: Optional[str] = None

    class Config:
        populate_by_name = True


class CartCreate(BaseModel):
    items: List[CartItemIn] = Field(min_length=1)


class CartItemOut(BaseModel):
    id: int
    product_id: int = Field(serialization_alias="productId")
    name: str
    price: float
    quantity: int
    src: Optional[str] = None

    class Config:
        from_attributes = True


class CartOut(BaseModel):
    id: int
    slug: str
    total: float
    status: PaymentStatus
    items: List[CartItemOut]

    class Config:
        from_attributes = True
