# tests/conftest.py

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from src.api.routes.routes import get_gateway_factory
from src.domain.exceptions import GatewayUnavailableError
from src.domain.payment import (
    CheckoutSession,
    PaymentStatus,
    PaymentVerification,
    WebhookNotice,
)
from src.infrastructure.db.models import Base
from src.infrastructure.db.session import database
from src.infrastructure.gateways.base import PaymentGateway
from src.infrastructure.notifications.email_service import EmailService
from src.main import app


class FakeGateway(PaymentGateway):
    """In-memory aggregator whose answers are set by the test."""

    name = "monnify"

    def __init__(self):
        self.statuses: dict[str, PaymentStatus] = {}
        self.amounts: dict[str, int] = {}
        self.paid_amounts: dict[str, int] = {}
        self.initialized: list[dict] = []
        self.verify_calls: list[str] = []
        self.initialize_down = False
        self.verify_down = False
        self.signature_valid = True

    def initialize(self, amount, customer, reference, metadata):
        if self.initialize_down:
            raise GatewayUnavailableError("Bank transfer service is unavailable")
        transaction_reference = f"MNFY|{reference}"
        self.amounts[transaction_reference] = amount
        self.initialized.append(
            {
                "amount": amount,
                "customer": customer,
                "reference": reference,
                "metadata": metadata,
            }
        )
        return CheckoutSession(
            provider=self.name,
            transaction_reference=transaction_reference,
            checkout_url=f"https://checkout.test/{reference}",
        )

    def verify(self, transaction_reference):
        self.verify_calls.append(transaction_reference)
        if self.verify_down:
            raise GatewayUnavailableError("Bank transfer service is unavailable")
        status = self.statuses.get(transaction_reference, PaymentStatus.PENDING)
        default_paid = self.amounts.get(transaction_reference, 0) if status is PaymentStatus.PAID else 0
        return PaymentVerification(
            provider=self.name,
            transaction_reference=transaction_reference,
            status=status,
            amount_paid=self.paid_amounts.get(transaction_reference, default_paid),
            gateway_status=status.value,
        )

    def parse_webhook(self, payload):
        data = payload.get("eventData") or payload
        event_type = payload.get("eventType", "")
        reference = data.get("transactionReference")
        return WebhookNotice(
            provider=self.name,
            event_type=event_type,
            transaction_reference=reference,
            claimed_status=data.get("paymentStatus"),
            actionable=bool(reference) and event_type == "SUCCESSFUL_TRANSACTION",
        )

    def verify_webhook_signature(self, raw_body, signature):
        return self.signature_valid

    def pay(self, transaction_reference, amount_paid=None):
        self.statuses[transaction_reference] = PaymentStatus.PAID
        if amount_paid is not None:
            self.paid_amounts[transaction_reference] = amount_paid


@pytest.fixture(autouse=True)
def test_database():
    database.configure(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=database.engine)
    yield database
    Base.metadata.drop_all(bind=database.engine)
    database.dispose()


@pytest.fixture
def sent_receipts(monkeypatch):
    sent = []

    def fake_send(self, context):
        sent.append(context)
        return True

    monkeypatch.setattr(EmailService, "send_booking_receipt", fake_send)
    return sent


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway, sent_receipts):
    app.dependency_overrides[get_gateway_factory] = lambda: (lambda name=None: gateway)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    session = database.session()
    yield session
    session.close()


@pytest.fixture
def standard_event(client):
    hall = client.post(
        "/halls",
        json={"id": "hallA", "name": "Hall A", "capacity": 48, "type": "standard"},
    )
    assert hall.status_code == 201
    response = client.post(
        "/events",
        json={
            "title": "The Last Projectionist",
            "type": "movie",
            "category": "drama",
            "date": "2026-12-01",
            "time": "19:30",
            "hall": "hallA",
            "totalSeats": 48,
            "pricing": {"standardSingle": {"price": 2500}},
        },
    )
    assert response.status_code == 201
    return response.json()["id"]


def booking_payload(event_id, seats, **overrides):
    payload = {
        "customerName": "Ada Obi",
        "customerEmail": "ada@example.com",
        "customerPhone": "08030000000",
        "eventId": event_id,
        "seats": seats,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_booking(client):
    def _make(event_id, seats, **overrides):
        response = client.post("/bookings/initiate", json=booking_payload(event_id, seats, **overrides))
        assert response.status_code == 201, response.text
        return response.json()

    return _make


@pytest.fixture
def booking_body():
    return booking_payload
