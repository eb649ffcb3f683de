"""
Inbound gateway notifications.

Each notification is stored verbatim first, in its own transaction, so the
audit trail survives a payload that fails to parse or an invoice that does not
resolve. Parsing tries each known shape in turn and yields one
``GatewayResult``; applying it is left to the reconciliation engine.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from core.errors import ValidationError
from models.payment import Payment
from models.payment_event import PaymentEvent
from schemas.webhook import CheckoutNotification, StkCallbackPayload, TransactionResultPayload
from services.reconciliation import GatewayResult, ReconciliationEngine
from services.status_codes import checkout_status, mpesa_status, normalize_code

logger = logging.getLogger(__name__)

SOURCE_MPESA_CALLBACK = "mpesa_callback"
SOURCE_MPESA_RESULT = "mpesa_result"
SOURCE_CHECKOUT = "checkout"


def _amount(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _named_value(pairs: Iterable[Any], name: str, key_attr: str) -> Any:
    for pair in pairs:
        if getattr(pair, key_attr) == name:
            return pair.Value
    return None


def _from_stk_callback(payload: StkCallbackPayload) -> GatewayResult:
    callback = payload.Body.stkCallback
    items = callback.CallbackMetadata.Item if callback.CallbackMetadata else []
    return GatewayResult(
        status=mpesa_status(callback.ResultCode),
        result_code=normalize_code(callback.ResultCode),
        description=callback.ResultDesc,
        amount=_amount(_named_value(items, "Amount", "Name")),
        checkout_request_id=callback.CheckoutRequestID,
        merchant_request_id=callback.MerchantRequestID,
    )


def _from_transaction_result(payload: TransactionResultPayload) -> GatewayResult:
    result = payload.Result
    params = result.ResultParameters.ResultParameter if result.ResultParameters else []
    return GatewayResult(
        status=mpesa_status(result.ResultCode),
        result_code=normalize_code(result.ResultCode),
        description=result.ResultDesc,
        amount=_amount(_named_value(params, "Amount", "Key")),
    )


# Tried in order; the first shape that validates wins.
MPESA_SHAPES = (
    (StkCallbackPayload, _from_stk_callback),
    (TransactionResultPayload, _from_transaction_result),
)


def parse_mpesa_notification(payload: Any) -> GatewayResult:
    errors = []
    for schema, normalize in MPESA_SHAPES:
        try:
            parsed: BaseModel = schema.model_validate(payload)
        except SchemaError as e:
            errors.extend(
                {"shape": schema.__name__, "loc": list(err["loc"]), "msg": err["msg"]}
                for err in e.errors()
            )
            continue
        return normalize(parsed)
    raise ValidationError("Unrecognised gateway notification", errors=errors)


def parse_checkout_notification(payload: Any) -> tuple[str, GatewayResult]:
    try:
        notification = CheckoutNotification.model_validate(payload)
    except SchemaError as e:
        raise ValidationError(
            "Invalid checkout notification",
            errors=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        ) from e
    result = GatewayResult(
        status=checkout_status(notification.request_status_code),
        result_code=notification.request_status_code,
        description=notification.request_status_description,
        amount=_amount(notification.amount_paid),
    )
    return notification.account_number, result


class WebhookReceiver:
    def __init__(self, db: Session, engine: ReconciliationEngine):
        self.db = db
        self.engine = engine

    def record(self, invoice_number: Optional[str], source: str, payload: Any) -> PaymentEvent:
        event = PaymentEvent(invoice_number=invoice_number, source=source, payload=payload)
        self.db.add(event)
        self.db.commit()
        return event

    def receive_mpesa(self, invoice_number: str, payload: Any, source: str = SOURCE_MPESA_CALLBACK) -> Payment:
        self.record(invoice_number, source, payload)
        try:
            result = parse_mpesa_notification(payload)
        except ValidationError:
            logger.warning(f"Rejected {source} notification for {invoice_number}")
            raise
        logger.info(f"{source} for {invoice_number}: code {result.result_code} -> {result.status.value}")
        return self.engine.apply_result(invoice_number, result)

    def receive_checkout(self, payload: Any) -> Payment:
        invoice_hint = payload.get("account_number") if isinstance(payload, dict) else None
        self.record(str(invoice_hint) if invoice_hint is not None else None, SOURCE_CHECKOUT, payload)
        invoice_number, result = parse_checkout_notification(payload)
        logger.info(f"checkout for {invoice_number}: code {result.result_code} -> {result.status.value}")
        return self.engine.apply_result(invoice_number, result)
