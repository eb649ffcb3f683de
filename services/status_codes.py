"""Gateway result code to PaymentStatus lookup tables."""
import logging
from typing import Mapping, Union

from models.status import PaymentStatus

logger = logging.getLogger(__name__)

# M-Pesa reports success as 0; every documented non-zero code is a failure
# (1 insufficient funds, 1032 cancelled by payer, 1037 unreachable, 2001 wrong PIN...).
MPESA_RESULT_CODES: Mapping[str, PaymentStatus] = {
    "0": PaymentStatus.COMPLETED,
    "1": PaymentStatus.FAILED,
    "17": PaymentStatus.FAILED,
    "26": PaymentStatus.FAILED,
    "1001": PaymentStatus.FAILED,
    "1019": PaymentStatus.FAILED,
    "1025": PaymentStatus.FAILED,
    "1032": PaymentStatus.FAILED,
    "1037": PaymentStatus.FAILED,
    "2001": PaymentStatus.FAILED,
    "9999": PaymentStatus.FAILED,
}

CHECKOUT_STATUS_CODES: Mapping[str, PaymentStatus] = {
    "129": PaymentStatus.EXPIRED,
    "177": PaymentStatus.PARTIAL,
    "178": PaymentStatus.COMPLETED,
    "179": PaymentStatus.REFUNDED,
    "180": PaymentStatus.REJECTED,
    "183": PaymentStatus.ACCEPTED,
    "188": PaymentStatus.RECEIVED,
}


def normalize_code(code: Union[int, str, None]) -> str:
    if code is None:
        return ""
    return str(code).strip()


def lookup_status(
    code: Union[int, str, None],
    table: Mapping[str, PaymentStatus],
    gateway: str,
    fallback: PaymentStatus = PaymentStatus.FAILED,
) -> PaymentStatus:
    key = normalize_code(code)
    status = table.get(key)
    if status is None:
        logger.warning(f"Unmapped {gateway} result code {key!r}; recording {fallback.value}")
        return fallback
    return status


def mpesa_status(code: Union[int, str, None]) -> PaymentStatus:
    return lookup_status(code, MPESA_RESULT_CODES, "mpesa")


def checkout_status(code: Union[int, str, None]) -> PaymentStatus:
    return lookup_status(code, CHECKOUT_STATUS_CODES, "checkout")
