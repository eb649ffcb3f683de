import logging
from datetime import datetime, timedelta

from celery import current_app
from sqlalchemy import select

from core.config import settings
from core.db import db_session
from core.errors import AppError, GatewayError
from models.payment import Payment
from models.status import PaymentStatus
from services.mpesa import MpesaClient
from services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)


def _engine(db) -> ReconciliationEngine:
    # A worker retries through Celery, so each run polls once without in-process backoff
    return ReconciliationEngine(db, MpesaClient.from_settings(), max_attempts=1)


@current_app.task(bind=True, max_retries=5)
def reconcile_payment(self, invoice_number: str):
    """
    Poll the gateway for one invoice out of band.
    Retries with exponential backoff while the gateway is unavailable.
    """
    try:
        with db_session() as db:
            status = _engine(db).poll(invoice_number)
    except GatewayError as exc:
        countdown = min(settings.PAYMENT_POLL_BACKOFF_SECONDS * (2 ** self.request.retries), settings.PAYMENT_POLL_BACKOFF_MAX_SECONDS)
        logger.warning(f"Reconciling {invoice_number} failed: {exc.message}; retry in {countdown}s")
        raise self.retry(exc=exc, countdown=countdown)
    return {"invoice_number": invoice_number, "status": status.value}


def find_stale_pending(db, older_than: timedelta, limit: int = 100) -> list[str]:
    cutoff = datetime.utcnow() - older_than
    stmt = (
        select(Payment.invoice_number)
        .where(
            Payment.status == PaymentStatus.PENDING,
            Payment.checkout_request_id.is_not(None),
            Payment.updated_at < cutoff,
        )
        .order_by(Payment.updated_at)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars())


@current_app.task
def reconcile_pending_payments(limit: int = 100):
    """Sweep payments left Pending by a missed webhook and poll each one."""
    with db_session() as db:
        invoices = find_stale_pending(db, timedelta(minutes=settings.PAYMENT_SWEEP_AGE_MINUTES), limit)
    if not invoices:
        logger.info("No pending payments to reconcile")
        return {}

    outcomes = {}
    for invoice in invoices:
        try:
            with db_session() as db:
                outcomes[invoice] = _engine(db).poll(invoice).value
        except AppError as e:
            logger.warning(f"{invoice}: {e.message}")
            outcomes[invoice] = f"error: {type(e).__name__}"
        except Exception as e:
            logger.exception(f"Unexpected error reconciling {invoice}")
            outcomes[invoice] = f"error: {type(e).__name__}"
    logger.info(f"Reconciled {len(outcomes)} pending payments")
    return outcomes
