"""
M-Pesa (Daraja) gateway client.

Token acquisition, push-payment (STK push) initiation and status query. The
client never touches the database; a fresh bearer token is fetched for every
operation.
"""
import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import requests

from core.config import settings
from core.errors import GatewayAuthError, GatewayRequestError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/v1/generate?grant_type=client_credentials"
PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
QUERY_PATH = "/mpesa/stkpushquery/v1/query"


@dataclass
class PushRequest:
    amount: Decimal
    party_a: str
    phone_number: str
    invoice_number: str
    description: str = "Payment"

    def __post_init__(self):
        # The gateway only takes whole shillings
        self.amount = Decimal(str(self.amount))
        if self.amount <= 0:
            raise ValueError("amount must be greater than 0")
        if self.amount != self.amount.to_integral_value():
            raise ValueError("amount must be a whole number")


@dataclass
class PushResult:
    checkout_request_id: str
    merchant_request_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def build_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or resp.reason or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        return data.get("errorMessage") or data.get("ResponseDescription") or str(data)
    return str(data)


class MpesaClient:
    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        shortcode: str,
        passkey: str,
        callback_base_url: str,
        timeout: float = 20,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.base_url = base_url.rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_base_url = callback_base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.clock = clock

    @classmethod
    def from_settings(cls) -> "MpesaClient":
        return cls(
            base_url=settings.MPESA_BASE_URL,
            consumer_key=settings.MPESA_CONSUMER_KEY,
            consumer_secret=settings.MPESA_CONSUMER_SECRET,
            shortcode=settings.MPESA_SHORTCODE,
            passkey=settings.MPESA_PASSKEY,
            callback_base_url=settings.MPESA_CALLBACK_BASE_URL,
            timeout=settings.MPESA_TIMEOUT_SECONDS,
        )

    def _timestamp(self) -> str:
        return self.clock().strftime("%Y%m%d%H%M%S")

    def callback_url(self, invoice_number: str) -> str:
        return f"{self.callback_base_url}/payments/webhook/mpesa/{invoice_number}"

    def acquire_token(self) -> str:
        credentials = base64.b64encode(f"{self.consumer_key}:{self.consumer_secret}".encode()).decode()
        try:
            resp = self.session.get(
                f"{self.base_url}{TOKEN_PATH}",
                headers={"Authorization": f"Basic {credentials}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"M-Pesa token request failed: {e}")
            raise GatewayAuthError(f"Token request failed: {e}") from e
        if resp.status_code != 200:
            message = _error_message(resp)
            logger.warning(f"M-Pesa token request rejected ({resp.status_code}): {message}")
            raise GatewayAuthError(message)
        token = resp.json().get("access_token")
        if not token:
            raise GatewayAuthError("Token response carried no access_token")
        return token

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        token = self.acquire_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            resp = self.session.post(f"{self.base_url}{path}", json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"M-Pesa request to {path} failed: {e}")
            raise GatewayRequestError(str(e)) from e
        if not resp.ok:
            message = _error_message(resp)
            logger.warning(f"M-Pesa request to {path} returned {resp.status_code}: {message}")
            raise GatewayRequestError(message, status_code_received=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise GatewayRequestError("Gateway returned a non-JSON body", status_code_received=resp.status_code) from e

    def initiate_push(self, request: PushRequest) -> PushResult:
        timestamp = self._timestamp()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": build_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": int(request.amount),
            "PartyA": request.party_a,
            "PartyB": self.shortcode,
            "PhoneNumber": request.phone_number,
            "CallBackURL": self.callback_url(request.invoice_number),
            "AccountReference": request.invoice_number,
            "TransactionDesc": request.description,
        }
        data = self._post(PUSH_PATH, payload)
        checkout_id = data.get("CheckoutRequestID")
        if str(data.get("ResponseCode", "")) != "0" or not checkout_id:
            raise GatewayRequestError(data.get("errorMessage") or data.get("ResponseDescription") or "Push request not accepted")
        logger.info(f"Push payment initiated for {request.invoice_number}: {checkout_id}")
        return PushResult(
            checkout_request_id=checkout_id,
            merchant_request_id=data.get("MerchantRequestID"),
            raw=data,
        )

    def query_status(self, checkout_request_id: str) -> Dict[str, Any]:
        timestamp = self._timestamp()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password": build_password(self.shortcode, self.passkey, timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }
        return self._post(QUERY_PATH, payload)
