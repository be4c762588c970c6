# tests/unit/test_gateways.py

import hashlib
import hmac

import pytest
import requests

from src.domain.exceptions import (
    GatewayConfigurationError,
    GatewayUnavailableError,
    ValidationFailedError,
)
from src.domain.payment import Customer, PaymentStatus
from src.infrastructure.gateways.factory import get_gateway
from src.infrastructure.gateways.monnify_gateway import MonnifyGateway, normalize_status
from src.infrastructure.gateways.razorpay_gateway import RazorpayGateway


CUSTOMER = Customer(name="Ada Obi", email="ada@example.com", phone="08030000000")


class FakeResponse:

    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.body


class FakeSession:
    """Answers Monnify paths from a dict; records every call."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        for path, answer in self.routes.items():
            if url.endswith(path) or path in url:
                if isinstance(answer, Exception):
                    raise answer
                return answer
        raise AssertionError(f"unexpected call {method} {url}")


LOGIN = FakeResponse({"requestSuccessful": True, "responseBody": {"accessToken": "token-1"}})


def _monnify(routes):
    return MonnifyGateway(
        api_key="MK_TEST",
        secret_key="SECRET",
        contract_code="1234567890",
        base_url="https://sandbox.monnify.test",
        session=FakeSession(routes),
    )


# ---------------------
# MONNIFY
# ---------------------

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("PAID", PaymentStatus.PAID),
        ("overpaid", PaymentStatus.PAID),
        ("PENDING", PaymentStatus.PENDING),
        ("PARTIALLY_PAID", PaymentStatus.FAILED),
        ("FAILED", PaymentStatus.FAILED),
        ("REVERSED", PaymentStatus.FAILED),
        ("EXPIRED", PaymentStatus.CANCELLED),
        ("ABANDONED", PaymentStatus.CANCELLED),
        ("SOMETHING_NEW", PaymentStatus.PENDING),
        (None, PaymentStatus.PENDING),
    ],
)
def test_monnify_status_normalization(raw, expected):
    assert normalize_status(raw) is expected


def test_monnify_initialize_returns_checkout():
    gateway = _monnify(
        {
            "/api/v1/auth/login": LOGIN,
            "/init-transaction": FakeResponse(
                {
                    "requestSuccessful": True,
                    "responseBody": {
                        "transactionReference": "MNFY|20261019|000001",
                        "checkoutUrl": "https://sandbox.monnify.test/checkout/abc",
                    },
                }
            ),
        }
    )

    session = gateway.initialize(5100, CUSTOMER, "PAY_ABC", {"eventId": "e1", "seats": ["HALLA-1"]})

    assert session.transaction_reference == "MNFY|20261019|000001"
    assert session.checkout_url == "https://sandbox.monnify.test/checkout/abc"
    init_call = gateway.http.calls[1]
    assert init_call["json"]["amount"] == 5100
    assert init_call["json"]["paymentReference"] == "PAY_ABC"
    assert init_call["headers"]["Authorization"] == "Bearer token-1"
    assert all(call["timeout"] for call in gateway.http.calls)


def test_monnify_verify_maps_status_and_amount():
    gateway = _monnify(
        {
            "/api/v1/auth/login": LOGIN,
            "/api/v2/transactions/": FakeResponse(
                {
                    "requestSuccessful": True,
                    "responseBody": {
                        "transactionReference": "MNFY|1",
                        "paymentStatus": "PAID",
                        "amountPaid": "5100.00",
                    },
                }
            ),
        }
    )

    verification = gateway.verify("MNFY|1")

    assert verification.is_paid
    assert verification.amount_paid == 5100
    assert verification.gateway_status == "PAID"
    assert gateway.http.calls[1]["url"].endswith("/api/v2/transactions/MNFY%7C1")


def test_monnify_network_error_is_unavailable_not_failed():
    gateway = _monnify(
        {
            "/api/v1/auth/login": LOGIN,
            "/api/v2/transactions/": requests.exceptions.ConnectTimeout("timed out"),
        }
    )

    with pytest.raises(GatewayUnavailableError):
        gateway.verify("MNFY|1")


def test_monnify_error_responses_are_unavailable():
    http_error = _monnify({"/api/v1/auth/login": FakeResponse({}, status_code=502)})
    with pytest.raises(GatewayUnavailableError):
        http_error.verify("MNFY|1")

    rejected = _monnify(
        {
            "/api/v1/auth/login": FakeResponse(
                {"requestSuccessful": False, "responseMessage": "Invalid credentials"}
            )
        }
    )
    with pytest.raises(GatewayUnavailableError):
        rejected.verify("MNFY|1")


def test_monnify_missing_keys(monkeypatch):
    monkeypatch.delenv("MONNIFY_PUBLIC_KEY", raising=False)
    monkeypatch.delenv("MONNIFY_SECRET_KEY", raising=False)
    monkeypatch.delenv("MONNIFY_CONTRACT_CODE", raising=False)

    with pytest.raises(GatewayConfigurationError):
        MonnifyGateway(session=FakeSession({})).verify("MNFY|1")


def test_monnify_webhook_parsing():
    gateway = _monnify({})

    nested = gateway.parse_webhook(
        {
            "eventType": "SUCCESSFUL_TRANSACTION",
            "eventData": {"transactionReference": "MNFY|1", "paymentStatus": "PAID"},
        }
    )
    assert nested.actionable
    assert nested.transaction_reference == "MNFY|1"
    assert nested.claimed_status == "PAID"

    flat = gateway.parse_webhook({"transactionReference": "MNFY|2", "paymentStatus": "PAID"})
    assert flat.actionable
    assert flat.transaction_reference == "MNFY|2"

    settlement = gateway.parse_webhook(
        {"eventType": "SETTLEMENT", "eventData": {"transactionReference": "MNFY|3"}}
    )
    assert not settlement.actionable


def test_monnify_webhook_signature():
    gateway = _monnify({})
    body = b'{"eventType":"SUCCESSFUL_TRANSACTION"}'
    signature = hmac.new(b"SECRET", body, hashlib.sha512).hexdigest()

    assert gateway.verify_webhook_signature(body, signature)
    assert not gateway.verify_webhook_signature(body, "0" * 128)
    assert not gateway.verify_webhook_signature(body + b" ", signature)
    assert not gateway.verify_webhook_signature(body, "sign\u00e9")


# ---------------------
# RAZORPAY
# ---------------------

class FakeOrders:

    def __init__(self, order, payments=None, error=None):
        self.order = order
        self.payment_items = payments or []
        self.error = error
        self.created = []

    def create(self, data, **kwargs):
        if self.error:
            raise self.error
        self.created.append(data)
        return {"id": "order_123", "status": "created", "amount": data["amount"]}

    def fetch(self, order_id, **kwargs):
        if self.error:
            raise self.error
        return self.order

    def payments(self, order_id, **kwargs):
        return {"items": self.payment_items}


class FakeRazorpayClient:

    def __init__(self, orders):
        self.order = orders


def test_razorpay_initialize_uses_minor_units():
    orders = FakeOrders(order={})
    gateway = RazorpayGateway(client=FakeRazorpayClient(orders))

    session = gateway.initialize(5100, CUSTOMER, "PAY_ABC", {"eventId": "e1"})

    assert session.transaction_reference == "order_123"
    assert session.checkout_handle == "order_123"
    assert orders.created[0]["amount"] == 510000
    assert orders.created[0]["receipt"] == "PAY_ABC"


@pytest.mark.parametrize(
    "order, payments, expected, amount",
    [
        ({"status": "paid", "amount_paid": 510000}, [], PaymentStatus.PAID, 5100),
        ({"status": "created", "amount_paid": 0}, [], PaymentStatus.PENDING, 0),
        ({"status": "attempted", "amount_paid": 0}, [{"status": "failed", "amount": 510000}], PaymentStatus.FAILED, 0),
        (
            {"status": "attempted", "amount_paid": 0},
            [{"status": "failed", "amount": 510000}, {"status": "captured", "amount": 510000}],
            PaymentStatus.PAID,
            5100,
        ),
        ({"status": "attempted", "amount_paid": 0}, [{"status": "authorized", "amount": 510000}], PaymentStatus.PENDING, 0),
    ],
)
def test_razorpay_verify_status(order, payments, expected, amount):
    gateway = RazorpayGateway(client=FakeRazorpayClient(FakeOrders(order=order, payments=payments)))

    verification = gateway.verify("order_123")

    assert verification.status is expected
    assert verification.amount_paid == amount


def test_razorpay_transport_error_is_unavailable():
    orders = FakeOrders(order={}, error=requests.exceptions.ConnectionError("reset"))
    gateway = RazorpayGateway(client=FakeRazorpayClient(orders))

    with pytest.raises(GatewayUnavailableError):
        gateway.verify("order_123")


def test_razorpay_missing_keys(monkeypatch):
    monkeypatch.delenv("RAZORPAY_KEY_ID", raising=False)
    monkeypatch.delenv("RAZORPAY_KEY_SECRET", raising=False)

    with pytest.raises(GatewayConfigurationError):
        RazorpayGateway().verify("order_123")


def test_razorpay_webhook_parsing():
    notice = RazorpayGateway(client=FakeRazorpayClient(FakeOrders(order={}))).parse_webhook(
        {
            "event": "payment.captured",
            "payload": {"payment": {"entity": {"order_id": "order_123", "status": "captured"}}},
        }
    )

    assert notice.actionable
    assert notice.transaction_reference == "order_123"
    assert notice.claimed_status == "captured"


def test_razorpay_webhook_signature_rejects_undecodable_body(monkeypatch):
    monkeypatch.setenv("RAZORPAY_WEBHOOK_SECRET", "whsec")
    gateway = RazorpayGateway(client=FakeRazorpayClient(FakeOrders(order={})))

    assert not gateway.verify_webhook_signature(b"\xff\xfe{}", "abc")
    assert not gateway.verify_webhook_signature(b"{}", None)


# ---------------------
# FACTORY
# ---------------------

def test_factory_names(monkeypatch):
    monkeypatch.delenv("PAYMENT_GATEWAY", raising=False)

    assert isinstance(get_gateway("card"), RazorpayGateway)
    assert isinstance(get_gateway("monnify"), MonnifyGateway)
    assert isinstance(get_gateway(), MonnifyGateway)

    with pytest.raises(ValidationFailedError):
        get_gateway("cash")
