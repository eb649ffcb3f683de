"""Inbound gateway notification shapes.

Field names follow the gateways' own JSON, so they are not snake_cased.
"""
from typing import Any, List, Optional, Union

from pydantic import BaseModel, field_validator


class CallbackItem(BaseModel):
    Name: str
    Value: Any = None


class CallbackMetadataBlock(BaseModel):
    Item: List[CallbackItem] = []


class StkCallback(BaseModel):
    MerchantRequestID: Optional[str] = None
    CheckoutRequestID: Optional[str] = None
    ResultCode: Union[int, str]
    ResultDesc: Optional[str] = None
    CallbackMetadata: Optional[CallbackMetadataBlock] = None


class StkCallbackBody(BaseModel):
    stkCallback: StkCallback


class StkCallbackPayload(BaseModel):
    """Push-payment callback: ``{"Body": {"stkCallback": {...}}}``."""

    Body: StkCallbackBody


class ResultParameterItem(BaseModel):
    Key: str
    Value: Any = None


class ResultParameterBlock(BaseModel):
    ResultParameter: List[ResultParameterItem] = []

    @field_validator("ResultParameter", mode="before")
    @classmethod
    def _single_parameter(cls, value):
        # The gateway sends a bare object when there is only one parameter
        if isinstance(value, dict):
            return [value]
        return value


class TransactionResult(BaseModel):
    ResultType: Optional[int] = None
    ResultCode: Union[int, str]
    ResultDesc: Optional[str] = None
    OriginatorConversationID: Optional[str] = None
    ConversationID: Optional[str] = None
    TransactionID: Optional[str] = None
    ResultParameters: Optional[ResultParameterBlock] = None


class TransactionResultPayload(BaseModel):
    """Result notification: ``{"Result": {"ResultCode": ..., "ResultParameters": {...}}}``."""

    Result: TransactionResult


class CheckoutNotification(BaseModel):
    """Hosted-checkout gateway notification."""

    account_number: str
    request_status_code: str
    request_status_description: Optional[str] = None
    amount_paid: Optional[float] = None
    request_amount: Optional[float] = None
    original_request_amount: Optional[float] = None
    service_charge_amount: Optional[float] = None
    service_code: Optional[str] = None
    msisdn: Optional[str] = None
    payments: List[Any] = []
    failed_payments: List[Any] = []
    status_date: Optional[str] = None
    country_abbrev: Optional[str] = None

    @field_validator("request_status_code", mode="before")
    @classmethod
    def _code_as_string(cls, value):
        if isinstance(value, int):
            return str(value)
        return value
