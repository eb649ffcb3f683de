import pytest

from core.errors import GatewayRequestError
from models.booking import Booking
from models.cart import Cart
from models.payment import Payment
from models.payment_event import PaymentEvent
from models.status import PaymentStatus
from security import jwt as jwt_utils

import payloads


def _send_body(invoice="T-1", amount=500):
    return {
        "amount": amount,
        "partyA": "254708374149",
        "phoneNumber": "254708374149",
        "transactionDesc": "Tee time",
        "invoiceNumber": invoice,
    }


class TestAuthentication:
    """Bearer token checks on user-facing routes."""

    def test_missing_token_is_forbidden(self, client):
        response = client.post("/payments/send", json=_send_body())
        assert response.status_code == 403

    def test_invalid_token_is_unauthorised(self, client):
        response = client.post("/payments/send", json=_send_body(), headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Unauthorised"

    def test_expired_token_is_unauthorised(self, client, user_id):
        token = jwt_utils.create_access_token(user_id, minutes=-5)
        response = client.get("/payments/T-1", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_webhooks_need_no_token(self, client, make_booking):
        make_booking("T-1")
        response = client.post("/payments/webhook/mpesa/T-1", json=payloads.stk_callback())
        assert response.status_code == 201


class TestSendPayment:
    """POST /payments/send"""

    def test_happy_path(self, client, db, gateway, sleeps, make_booking, auth_headers, user_id):
        make_booking("T-1")

        response = client.post("/payments/send", json=_send_body(), headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"status": "Completed"}
        assert len(gateway.pushes) == 1
        assert gateway.pushes[0].description == "Tee time"
        payment = db.query(Payment).one()
        assert payment.user_id == user_id
        assert db.get(Booking, 1).status == PaymentStatus.COMPLETED

    def test_cancelled_by_payer(self, client, db, gateway, make_booking, auth_headers):
        make_booking("T-1")
        gateway.responses = [{"ResultCode": "1032", "ResultDesc": "Request cancelled by user"}]

        response = client.post("/payments/send", json=_send_body(), headers=auth_headers)

        assert response.json() == {"status": "Failed"}
        assert db.get(Booking, 1).status == PaymentStatus.FAILED

    @pytest.mark.parametrize("amount", [0, -10, 10.99, 0.5])
    def test_invalid_amount_is_rejected(self, client, gateway, make_booking, auth_headers, amount):
        make_booking("T-1")

        response = client.post("/payments/send", json=_send_body(amount=amount), headers=auth_headers)

        assert response.status_code == 400
        assert gateway.pushes == []

    def test_missing_field(self, client, auth_headers):
        body = _send_body()
        del body["phoneNumber"]
        response = client.post("/payments/send", json=body, headers=auth_headers)
        assert response.status_code == 400

    def test_unknown_order(self, client, gateway, auth_headers):
        response = client.post("/payments/send", json=_send_body("X-1"), headers=auth_headers)

        assert response.status_code == 404
        assert gateway.pushes == []

    def test_gateway_failure_is_generic(self, client, db, gateway, make_booking, auth_headers):
        make_booking("T-1")
        gateway.push_error = GatewayRequestError("Bad Request - Invalid PhoneNumber", status_code_received=400)

        response = client.post("/payments/send", json=_send_body(), headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"] == "Payment gateway unavailable, please try again"
        assert "PhoneNumber" not in response.text
        assert db.query(Payment).count() == 0


class TestCheckPayment:
    """POST /payments/check/{invoiceNumber}"""

    def test_returns_reconciled_status(self, client, db, make_booking, auth_headers):
        make_booking("T-1")
        db.add(Payment(invoice_number="T-1", status=PaymentStatus.PENDING, checkout_request_id="ws_CO_T-1"))
        db.commit()

        response = client.post("/payments/check/T-1", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"status": "Completed"}

    def test_exhausted_retries(self, client, db, gateway, sleeps, make_booking, auth_headers):
        make_booking("T-1")
        db.add(Payment(invoice_number="T-1", status=PaymentStatus.PENDING, checkout_request_id="ws_CO_T-1"))
        db.commit()
        gateway.responses = [GatewayRequestError("The transaction is being processed", status_code_received=500)]

        response = client.post("/payments/check/T-1", headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["detail"] == "Payment gateway unavailable, please try again"
        assert len(gateway.queries) == 3
        assert sleeps == [2, 4]
        db.expire_all()
        assert db.query(Payment).one().status == PaymentStatus.PENDING

    def test_unknown_invoice(self, client, auth_headers):
        response = client.post("/payments/check/T-404", headers=auth_headers)
        assert response.status_code == 404

    def test_other_users_payment_is_hidden(self, client, db, gateway, make_booking, auth_headers):
        make_booking("T-1")
        db.add(Payment(invoice_number="T-1", status=PaymentStatus.PENDING, checkout_request_id="ws_CO_T-1", user_id="someone-else"))
        db.commit()

        response = client.post("/payments/check/T-1", headers=auth_headers)

        assert response.status_code == 404
        assert gateway.queries == []


class TestPaymentCode:
    """POST /payments/code"""

    def test_moves_to_review(self, client, db, make_booking, auth_headers):
        make_booking("T-1")

        response = client.post(
            "/payments/code",
            json={"paymentCode": "NLJ7RT61SV", "invoiceNumber": "T-1"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "In_Review"
        assert body["paymentCode"] == "NLJ7RT61SV"
        assert db.get(Booking, 1).status == PaymentStatus.IN_REVIEW

    def test_conflicts_with_completed_payment(self, client, make_booking, auth_headers):
        make_booking("T-1")
        client.post("/payments/webhook/mpesa/T-1", json=payloads.stk_callback())

        response = client.post(
            "/payments/code",
            json={"paymentCode": "NLJ7RT61SV", "invoiceNumber": "T-1"},
            headers=auth_headers,
        )

        assert response.status_code == 409


class TestMpesaWebhook:
    """POST /payments/webhook/mpesa/{invoiceNumber}"""

    def test_success_callback(self, client, db, make_booking):
        make_booking("T-1")

        response = client.post("/payments/webhook/mpesa/T-1", json=payloads.stk_callback(amount=500))

        assert response.status_code == 201
        body = response.json()
        assert body["invoiceNumber"] == "T-1"
        assert body["status"] == "Completed"
        assert body["amount"] == 500
        assert body["bookingId"] == 1
        assert db.get(Booking, 1).status == PaymentStatus.COMPLETED
        assert db.query(PaymentEvent).count() == 1

    def test_transaction_result_shape(self, client, make_cart, db):
        make_cart("C-2")

        response = client.post("/payments/webhook/mpesa/C-2", json=payloads.transaction_result(result_code=0))

        assert response.status_code == 201
        assert response.json()["cartId"] == 2
        assert db.get(Cart, 2).status == PaymentStatus.COMPLETED

    def test_duplicate_delivery(self, client, db, make_booking):
        make_booking("T-1")

        first = client.post("/payments/webhook/mpesa/T-1", json=payloads.stk_callback())
        second = client.post("/payments/webhook/mpesa/T-1", json=payloads.stk_callback())

        assert first.json() == second.json()
        assert db.query(Payment).count() == 1
        assert db.query(PaymentEvent).count() == 2

    def test_invalid_body_is_audited_and_rejected(self, client, db, make_booking):
        make_booking("T-1")

        response = client.post("/payments/webhook/mpesa/T-1", json={"Body": {"unexpected": True}})

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Unrecognised gateway notification"
        event = db.query(PaymentEvent).one()
        assert event.invoice_number == "T-1"
        assert event.payload == {"Body": {"unexpected": True}}
        assert db.query(Payment).count() == 0
        assert db.get(Booking, 1).status == PaymentStatus.PENDING

    def test_unknown_invoice(self, client, db):
        response = client.post("/payments/webhook/mpesa/T-999", json=payloads.stk_callback())

        assert response.status_code == 404
        assert db.query(Payment).count() == 0
        assert db.query(PaymentEvent).count() == 1


class TestResultWebhook:
    """POST /payments/webhook/update/{invoiceNumber}"""

    def test_returns_message(self, client, make_booking):
        make_booking("T-1")

        response = client.post("/payments/webhook/update/T-1", json=payloads.transaction_result(result_code=0))

        assert response.status_code == 200
        assert response.json() == {"message": "Payment T-1 updated to Completed"}

    def test_failure_code(self, client, db, make_booking):
        make_booking("T-1")

        response = client.post("/payments/webhook/update/T-1", json=payloads.transaction_result(result_code=2001))

        assert response.json() == {"message": "Payment T-1 updated to Failed"}
        assert db.query(PaymentEvent).one().source == "mpesa_result"


class TestCheckoutWebhook:
    """POST /payments/webhook/checkout"""

    def test_completed(self, client, db, make_cart):
        make_cart("C-5")

        response = client.post(
            "/payments/webhook/checkout",
            json={"account_number": "C-5", "request_status_code": 178, "amount_paid": "1200.00"},
        )

        assert response.status_code == 201
        assert response.json()["status"] == "Completed"
        assert db.get(Cart, 5).status == PaymentStatus.COMPLETED

    def test_partial_then_completed(self, client, db, make_booking):
        make_booking("E-4")

        client.post("/payments/webhook/checkout", json={"account_number": "E-4", "request_status_code": 177})
        assert db.get(Booking, 4).status == PaymentStatus.PARTIAL

        client.post("/payments/webhook/checkout", json={"account_number": "E-4", "request_status_code": "178"})
        assert db.get(Booking, 4).status == PaymentStatus.COMPLETED

    def test_missing_account_number(self, client, db):
        response = client.post("/payments/webhook/checkout", json={"request_status_code": 178})

        assert response.status_code == 400
        assert db.query(PaymentEvent).count() == 1


class TestGetPayment:
    def test_found(self, client, make_booking, auth_headers):
        make_booking("T-1")
        client.post("/payments/webhook/mpesa/T-1", json=payloads.stk_callback())

        response = client.get("/payments/T-1", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["checkoutRequestID"] == "ws_CO_T-1"

    def test_absent(self, client, auth_headers):
        response = client.get("/payments/T-404", headers=auth_headers)
        assert response.status_code == 404

    def test_owner_only(self, client, db, auth_headers, user_id):
        db.add(Payment(invoice_number="T-1", status=PaymentStatus.COMPLETED, user_id="someone-else"))
        db.add(Payment(invoice_number="T-2", status=PaymentStatus.COMPLETED, user_id=user_id))
        db.commit()

        assert client.get("/payments/T-1", headers=auth_headers).status_code == 404
        assert client.get("/payments/T-2", headers=auth_headers).status_code == 200


class TestOrders:
    """Booking and cart routes."""

    def test_create_and_fetch_booking(self, client, auth_headers):
        response = client.post(
            "/bookings",
            json={"kind": "event", "itemId": "evt-12", "amount": 1500},
            headers=auth_headers,
        )

        assert response.status_code == 201
        slug = response.json()["slug"]
        assert slug.startswith("E-")

        fetched = client.get(f"/bookings/{slug}", headers=auth_headers)
        assert fetched.status_code == 200
        assert fetched.json()["itemId"] == "evt-12"

    def test_booking_of_other_user_is_hidden(self, client, make_booking):
        make_booking("T-1")
        token = jwt_utils.create_access_token("someone-else")

        response = client.get("/bookings/T-1", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 404

    def test_create_cart(self, client, auth_headers):
        response = client.post(
            "/carts",
            json={"items": [{"productId": 1, "name": "Glove", "price": "900", "quantity": 2}]},
            headers=auth_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["slug"].startswith("C-")
        assert body["total"] == 1800

        fetched = client.get(f"/carts/{body['slug']}", headers=auth_headers)
        assert fetched.status_code == 200

    def test_empty_cart_is_rejected(self, client, auth_headers):
        response = client.post("/carts", json={"items": []}, headers=auth_headers)
        assert response.status_code == 400

    def test_bookings_require_token(self, client):
        response = client.post("/bookings", json={"kind": "tee", "itemId": "x"})
        assert response.status_code == 403


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
