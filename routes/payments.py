import time
from typing import Any, Callable

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from core.db import get_db
from core.errors import NotFoundError
from models.payment import Payment
from schemas.payment import (
    MessageOut,
    PaymentCodeRequest,
    PaymentOut,
    PaymentSendRequest,
    PaymentStatusOut,
)
from security.identity import get_current_user_id
from services.ledger import PaymentLedger
from services.mpesa import MpesaClient, PushRequest
from services.reconciliation import ReconciliationEngine
from services.webhooks import SOURCE_MPESA_RESULT, WebhookReceiver

router = APIRouter(prefix="/payments", tags=["payments"])


def get_gateway() -> MpesaClient:
    return MpesaClient.from_settings()


def get_sleep() -> Callable[[float], None]:
    return time.sleep


def get_engine(
    db: Session = Depends(get_db),
    gateway: MpesaClient = Depends(get_gateway),
    sleep: Callable[[float], None] = Depends(get_sleep),
) -> ReconciliationEngine:
    return ReconciliationEngine(db, gateway, sleep=sleep)


def get_receiver(
    db: Session = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_engine),
) -> WebhookReceiver:
    return WebhookReceiver(db, engine)


def _owned_payment(db: Session, invoice_number: str, user_id: str) -> Payment:
    payment = PaymentLedger(db).get_by_invoice(invoice_number)
    # Payments opened by a webhook have no owner yet
    if payment.user_id and payment.user_id != user_id:
        raise NotFoundError(f"Payment {invoice_number} not found")
    return payment


@router.post("/send", response_model=PaymentStatusOut)
def send_payment(
    data: PaymentSendRequest,
    user_id: str = Depends(get_current_user_id),
    engine: ReconciliationEngine = Depends(get_engine),
):
    request = PushRequest(
        amount=data.amount,
        party_a=data.party_a,
        phone_number=data.phone_number,
        invoice_number=data.invoice_number,
        description=data.transaction_desc,
    )
    return {"status": engine.initiate(request, user_id=user_id)}


@router.post("/check/{invoice_number}", response_model=PaymentStatusOut)
def check_payment(
    invoice_number: str,
    user_id: str = Depends(get_current_user_id),
    engine: ReconciliationEngine = Depends(get_engine),
):
    _owned_payment(engine.db, invoice_number, user_id)
    return {"status": engine.poll(invoice_number)}


@router.post("/code", response_model=PaymentOut)
def submit_payment_code(
    data: PaymentCodeRequest,
    user_id: str = Depends(get_current_user_id),
    engine: ReconciliationEngine = Depends(get_engine),
) -> Payment:
    return engine.submit_code(data.invoice_number, data.payment_code)


@router.post("/webhook/mpesa/{invoice_number}", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def mpesa_webhook(
    invoice_number: str,
    payload: Any = Body(default=None),
    receiver: WebhookReceiver = Depends(get_receiver),
) -> Payment:
    return receiver.receive_mpesa(invoice_number, payload)


@router.post("/webhook/update/{invoice_number}", response_model=MessageOut)
def mpesa_result_webhook(
    invoice_number: str,
    payload: Any = Body(default=None),
    receiver: WebhookReceiver = Depends(get_receiver),
):
    payment = receiver.receive_mpesa(invoice_number, payload, source=SOURCE_MPESA_RESULT)
    return {"message": f"Payment {payment.invoice_number} updated to {payment.status.value}"}


@router.post("/webhook/checkout", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def checkout_webhook(
    payload: Any = Body(default=None),
    receiver: WebhookReceiver = Depends(get_receiver),
) -> Payment:
    return receiver.receive_checkout(payload)


@router.get("/{invoice_number}", response_model=PaymentOut)
def get_payment(
    invoice_number: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Payment:
    return _owned_payment(db, invoice_number, user_id)
