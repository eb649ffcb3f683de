from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models.status import PaymentStatus


class PaymentSendRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    party_a: str = Field(alias="partyA", min_length=1)
    phone_number: str = Field(alias="phoneNumber", min_length=1)
    transaction_desc: str = Field(alias="transactionDesc", min_length=1, max_length=100)
    invoice_number: str = Field(alias="invoiceNumber", min_length=2, max_length=64)

    class Config:
        populate_by_name = True

    @field_validator("amount")
    @classmethod
    def _whole_amount(cls, value: Decimal) -> Decimal:
        if value != value.to_integral_value():
            raise ValueError("amount must be a whole number")
        return value


class PaymentCodeRequest(BaseModel):
    payment_code: str = Field(alias="paymentCode", min_length=1, max_length=64)
    invoice_number: str = Field(alias="invoiceNumber", min_length=2, max_length=64)

    class Config:
        populate_by_name = True


class PaymentStatusOut(BaseModel):
    status: PaymentStatus


class PaymentOut(BaseModel):
    id: int
    invoice_number: str = Field(serialization_alias="invoiceNumber")
    amount: Optional[float] = None
    status: PaymentStatus
    checkout_request_id: Optional[str] = Field(default=None, serialization_alias="checkoutRequestID")
    result_description: Optional[str] = Field(default=None, serialization_alias="resultDescription")
    payment_code: Optional[str] = Field(default=None, serialization_alias="paymentCode")
    booking_id: Optional[int] = Field(default=None, serialization_alias="bookingId")
    cart_id: Optional[int] = Field(default=None, serialization_alias="cartId")

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    message: str
